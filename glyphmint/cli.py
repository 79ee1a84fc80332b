#!/usr/bin/env python
#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# To use this, install with:
#
#   pip install --editable '.[cli]'
#
# That will create the command "glyphmint" in your path.
#
#
import click, sys, os, time, mimetypes
from getpass import getpass

from glyphmint.constants import *
from glyphmint.exceptions import RejectedByNetworkError, MalformedReferenceError
from glyphmint.compat import hash160, CT_priv_to_pubkey
from glyphmint.utils import B2A, render_address, address_to_pkh, decode_privkey
from glyphmint.payload import (make_nft_payload, encode, decode, commitment_hash,
                                split_blob, PAYLOAD_FIELDS)
from glyphmint.script import build_commit_script, build_singleton_script
from glyphmint.refs import (ref_for_own_output, ref_from_confirmed_output,
                                ref_from_confirmed_tx, format_ref, parse_ref)
from glyphmint.fees import estimate, commit_size, PER_BYTE, PER_KB
from glyphmint.txn import parse_tx, serialize_tx, sign_p2pkh_input, check_reveal
from glyphmint import mint as M
from glyphmint import __version__

# dict of options that apply to all commands
global global_opts
global_opts = dict()

# seconds between polls for confirmation
POLL_DELAY = 15

# Cleanup display (supress traceback) for user-feedback exceptions
_sys_excepthook = sys.excepthook
def my_hook(ty, val, tb):
    if issubclass(ty, RuntimeError):
        print("FATAL: %s" % val, file=sys.stderr)
    else:
        return _sys_excepthook(ty, val, tb)
sys.excepthook=my_hook

def fail(msg):
    # show message and stop
    click.echo(f"FAILURE: {msg}", err=True)
    sys.exit(1)

def get_net():
    # connection to the ledger server from global options
    from glyphmint.net import NetConnection
    import glyphmint.net as nn

    server = global_opts.get('server')
    if not server:
        fail("Need a server: use --server or set GLYPHMINT_SERVER")
    if global_opts.get('verbose'):
        nn.VERBOSE = True

    return NetConnection(server.rstrip('/'))

def get_privkey(key_text):
    # take key from arg or prompt, never echo it
    if not key_text:
        key_text = getpass("Enter private key (WIF or hex): ")
    try:
        return decode_privkey(key_text)
    except ValueError as err:
        fail(str(err))

def read_blob(arg):
    # glyph blob from a file, or hex on the command line
    if os.path.exists(arg):
        return open(arg, 'rb').read()
    try:
        return bytes.fromhex(arg)
    except ValueError:
        fail("Expecting a filename or hex of a glyph blob")

def parse_attrs(pairs):
    # name=value, numbers become ints
    rv = dict()
    for kv in pairs:
        if '=' not in kv:
            fail(f"Attribute must be name=value: {kv}")
        k, v = kv.split('=', 1)
        rv[k] = int(v) if v.lstrip('-').isdigit() else v
    return rv

def resolve_link(net, text):
    # ref of an existing asset: copied from its on-chain singleton output
    # - text is TXID or TXID:VOUT of the asset's (reveal) transaction
    if not text:
        return None
    txid, _, vout = text.partition(':')
    try:
        vout = int(vout) if vout else None
    except ValueError:
        fail(f"Output index must be a number: {text}")

    return ref_from_confirmed_tx(net.get_tx(txid), vout)

def show_payload(payload):
    labels = dict(PAYLOAD_FIELDS)
    for k, v in payload.items():
        label = labels.get(k, k)
        if k == 'main' and isinstance(v, dict):
            v = '%s (%d bytes)' % (v.get('t'), len(v.get('b') or b''))
        elif k in ('in', 'by'):
            v = ', '.join(format_ref(r) for r in v)
        elif isinstance(v, (bytes, bytearray)):
            v = B2A(v)
        click.echo('%s: %s' % (label, v))

# Accept any prefix of a command name.
#
# from <https://click.palletsprojects.com/en/8.0.x/advanced/?#command-aliases>
class AliasedGroup(click.Group):
    def get_command(self, ctx, cmd_name):
        rv = click.Group.get_command(self, ctx, cmd_name)
        if rv is not None:
            return rv
        matches = [x for x in self.list_commands(ctx)
                   if x.startswith(cmd_name)]
        if not matches:
            return None
        elif len(matches) == 1:
            return click.Group.get_command(self, ctx, matches[0])
        ctx.fail(f"Ambiguous command. Pick one of: {' | '.join(sorted(matches))}")

    def resolve_command(self, ctx, args):
        # always return the full command name
        _, cmd, args = super().resolve_command(ctx, args)
        return cmd.name, cmd, args


#
# Options we want for all commands
#
@click.group(cls=AliasedGroup)
@click.option('--server', '-s', envvar='GLYPHMINT_SERVER', default=None, metavar="URL",
                    help="Esplora-style API server for the chain")
@click.option('--ipfs-api', envvar='GLYPHMINT_IPFS_API', default=None, metavar="URL",
                    help="IPFS HTTP API used for uploads")
@click.option('--fee-rate', '-f', envvar='GLYPHMINT_FEE_RATE', type=float,
                    default=DEFAULT_FEE_RATE, show_default=True,
                    help="Fee rate in sats PER BYTE")
@click.option('--testnet', '-t', is_flag=True, help="Show testnet addresses")
@click.option('--verbose', '-v', is_flag=True, help="Show traffic with server.")
@click.option('--pdb', is_flag=True,
                    help="Prepare patient for surgery to remove bugs.")
@click.version_option(version=__version__)
def main(**kws):
    '''
    Build, sign and check commit/reveal Glyph NFT transactions.

    You can use "enc", or "e" for "encode": any distinct prefix for all commands.
    '''
    # implement PDB option here
    if kws.pop('pdb', False):
        import pdb
        def doit(ex_cls, ex, tb):
            pdb.pm()
        sys.excepthook = doit

    # global options, mostly not considered here
    global global_opts
    global_opts.update(kws)


@main.command('encode')
@click.option('--name', '-n', required=True, help="Display name")
@click.option('--image', '-i', type=click.Path(exists=True, dir_okay=False), required=True,
                    help="Image to store on chain")
@click.option('--mime', '-m', default=None, help="MIME type, default: from file extension")
@click.option('--type', 'type_tag', default=None, help="Type tag, like 'user' or 'container'")
@click.option('--loc', default=None, metavar="URI", help="External location of content")
@click.option('--container', '-c', default=None, metavar="REF", help="Container ref (txid_vout)")
@click.option('--author', '-a', default=None, metavar="REF", help="Author ref (txid_vout)")
@click.option('--attr', multiple=True, metavar="NAME=VALUE", help="Attribute, repeat as needed")
@click.option('--outfile', '-o', type=click.File('wb'), default=None,
                    help="Save the binary blob here, otherwise show hex")
def encode_payload(name, image, mime, type_tag, loc, container, author, attr, outfile):
    '''Encode NFT metadata into a glyph blob.

    Refs given here are used as-is; 'mint' looks them up on chain instead.
    '''
    mime = mime or mimetypes.guess_type(image)[0]
    if not mime:
        fail("Cannot guess MIME type, use --mime")

    payload = make_nft_payload(name, open(image, 'rb').read(), mime, type_tag=type_tag,
                    loc=loc,
                    container=parse_ref(container) if container else None,
                    author=parse_ref(author) if author else None,
                    attrs=parse_attrs(attr))
    blob = encode(payload)

    if outfile:
        outfile.write(blob)
        click.echo(f"Wrote {outfile.tell():,} bytes to: {outfile.name}", err=1)
    else:
        click.echo(B2A(blob))

    click.echo(f"Commitment hash: {B2A(commitment_hash(blob))}", err=1)

@main.command('decode')
@click.argument('blob', metavar="FILE|HEX")
def decode_payload(blob):
    "Show the contents of a glyph blob"
    show_payload(decode(read_blob(blob)))

@main.command('hash')
@click.argument('blob', metavar="FILE|HEX")
def hash_payload(blob):
    "Commitment hash of a glyph blob (marker excluded)"
    raw = read_blob(blob)
    marker, _ = split_blob(raw)
    if marker != GLYPH_MAGIC:
        fail("Not a glyph blob (no 'gly' marker)")
    click.echo(B2A(commitment_hash(raw)))

@main.command('commit-script')
@click.argument('blob', metavar="FILE|HEX")
@click.argument('address')
def show_commit_script(blob, address):
    "Script for the commit output, paying to ADDRESS"
    raw = read_blob(blob)
    decode(raw)         # only well-formed blobs
    try:
        pkh = address_to_pkh(address)
    except ValueError as err:
        fail(str(err))
    click.echo(B2A(build_commit_script(commitment_hash(raw), pkh).raw))

@main.command('singleton-script')
@click.argument('ref', metavar="REF")
@click.argument('address')
def show_singleton_script(ref, address):
    "Singleton output script holding REF, paying to ADDRESS"
    try:
        pkh = address_to_pkh(address)
    except ValueError as err:
        fail(str(err))
    click.echo(B2A(build_singleton_script(parse_ref(ref), pkh).raw))

@main.command('ref')
@click.argument('commit_txid', metavar="COMMIT_TXID")
@click.argument('vout', type=int)
def show_ref(commit_txid, vout):
    "Reference for a new singleton, from the COMMIT txid and output index"
    try:
        click.echo(B2A(ref_for_own_output(commit_txid, vout)))
    except ValueError as err:
        fail(str(err))

@main.command('extract-ref')
@click.argument('target', metavar="SCRIPT_HEX|TXID[:VOUT]")
@click.option('--from-chain', '-c', is_flag=True, help="Target is a txid, fetch it from server")
def extract_ref(target, from_chain):
    "Reference of an existing asset, copied from its broadcast output script"
    try:
        if from_chain:
            ref = resolve_link(get_net(), target)
        else:
            ref = ref_from_confirmed_output(target)
    except MalformedReferenceError as err:
        fail(str(err))

    click.echo(B2A(ref))
    click.echo(format_ref(ref), err=1)

@main.command('fee')
@click.argument('size', type=click.IntRange(min=0))
@click.option('--margin', '-m', type=float, default=DEFAULT_SAFETY_MARGIN, show_default=True,
                    help="Safety margin, 0.1 = 10%")
@click.option('--per-kb', is_flag=True, help="Global fee rate is per 1000 bytes, not per byte")
def show_fee(size, margin, per_kb):
    "Fee in sats for a transaction of SIZE bytes"
    rate = global_opts.get('fee_rate', DEFAULT_FEE_RATE)
    click.echo(str(estimate(size, rate, margin, unit=(PER_KB if per_kb else PER_BYTE))))

@main.command('upload')
@click.argument('image', type=click.Path(exists=True, dir_okay=False))
@click.option('--mime', '-m', default=None, help="MIME type, default: from file extension")
def upload_image(image, mime):
    "Upload content to IPFS, show the URI"
    from glyphmint.net import upload_content

    mime = mime or mimetypes.guess_type(image)[0] or 'application/octet-stream'
    click.echo(upload_content(open(image, 'rb').read(), mime, global_opts.get('ipfs_api')))

@main.command('check')
@click.argument('reveal', metavar="TX_HEX")
def check_reveal_tx(reveal):
    "Verify a signed reveal transaction against its commit output (fetched)"
    tx = parse_tx(reveal)
    if not tx.inputs:
        fail("Transaction has no inputs")

    spend = tx.inputs[0]
    commit = get_net().get_tx(spend.txid)
    if spend.vout >= len(commit.outputs):
        fail(f"Commit transaction has no output #{spend.vout}")
    prev = commit.outputs[spend.vout]

    problems = check_reveal(tx, prev.script, prev.value)
    if problems:
        for p in problems:
            click.echo(f"- {p}")
        fail("Reveal would be rejected.")

    click.echo("Reveal looks correct.")

def wait_confirmed(net, txid, wait):
    # poll server; returns False if not confirmed and told not to wait
    first = True
    while not net.is_confirmed(txid):
        if not wait:
            return False
        if first:
            click.echo(f"Waiting for confirmation of {txid} ...")
            first = False
        time.sleep(POLL_DELAY)
    return True

@main.command('mint')
@click.option('--name', '-n', default=None, help="Display name (new mints only)")
@click.option('--image', '-i', type=click.Path(exists=True, dir_okay=False), default=None,
                    help="Image to store on chain (new mints only)")
@click.option('--mime', '-m', default=None, help="MIME type, default: from file extension")
@click.option('--type', 'type_tag', default=None, help="Type tag")
@click.option('--loc', default=None, metavar="URI", help="External location of content")
@click.option('--upload', '-u', is_flag=True, help="Upload image to IPFS and use as --loc")
@click.option('--container', '-c', default=None, metavar="TXID[:VOUT]",
                    help="Container asset, by its reveal transaction")
@click.option('--author', '-a', default=None, metavar="TXID[:VOUT]",
                    help="Author asset, by its reveal transaction")
@click.option('--attr', multiple=True, metavar="NAME=VALUE", help="Attribute, repeat as needed")
@click.option('--key', '-k', default=None, help="Private key (WIF or hex), else prompt")
@click.option('--state-file', default='glyph-mint.cbor', show_default=True,
                    help="Progress is saved here; rerun to resume")
@click.option('--no-wait', is_flag=True, help="Don't wait for confirmations, just stop")
def mint_nft(name, image, mime, type_tag, loc, upload, container, author, attr,
                key, state_file, no_wait):
    '''Mint an NFT: commit, wait for confirmation, reveal.

    Funds come from the P2PKH address of the key given. Rerun with the same
    state file to continue an interrupted mint.
    '''
    net = get_net()
    testnet = global_opts.get('testnet', False)
    privkey = get_privkey(key)
    owner_pkh = hash160(CT_priv_to_pubkey(privkey))
    addr = render_address(privkey, testnet)

    def save():
        with open(state_file, 'wb') as fp:
            fp.write(mt.save())

    if os.path.exists(state_file):
        click.echo(f"Resuming from previous attempt... {state_file}")
        mt = M.GlyphMint.load(open(state_file, 'rb').read())
        if mt.owner_pkh != owner_pkh:
            fail("That key did not start this mint.")
    else:
        if not name or not image:
            fail("New mint needs --name and --image")
        mime = mime or mimetypes.guess_type(image)[0]
        if not mime:
            fail("Cannot guess MIME type, use --mime")
        data = open(image, 'rb').read()

        if upload:
            from glyphmint.net import upload_content
            loc = upload_content(data, mime, global_opts.get('ipfs_api'))
            click.echo(f"Uploaded: {loc}")

        payload = make_nft_payload(name, data, mime, type_tag=type_tag, loc=loc,
                        container=resolve_link(net, container),
                        author=resolve_link(net, author),
                        attrs=parse_attrs(attr))

        mt = M.GlyphMint(payload, owner_pkh, fee_rate=global_opts.get('fee_rate', DEFAULT_FEE_RATE))

    click.echo(repr(mt))

    if mt.state == M.BUILDING:
        from glyphmint.net import UTXOList

        coins = UTXOList(addr, web=net)
        coins.fetch()
        click.echo(f"Funds at {addr}: {coins.balance()}")

        worst_fee = estimate(commit_size(len(coins.utxos) or 1), mt.fee_rate, mt.safety_margin)
        try:
            funding = coins.pick(mt.commit_amount + worst_fee)
            tx = mt.build_commit(funding, change_pkh=owner_pkh)
        except ValueError as err:
            fail(str(err))

        for n, u in enumerate(funding):
            tx = sign_p2pkh_input(tx, n, privkey, u.value)

        click.echo(f"Commit: {len(serialize_tx(tx)):,} bytes, "
                        f"commit output {mt.commit_amount:,} sats")
        try:
            sent = net.broadcast(tx)
        except RejectedByNetworkError as exc:
            # nothing saved: the commit never happened
            fail(f"Commit rejected ({exc.category}): {exc.reason}")

        mt.commit_sent(sent)
        save()
        click.echo(f"Commit sent: {mt.commit_txid}")

    if mt.state == M.COMMIT_BROADCAST_PENDING:
        if not wait_confirmed(net, mt.commit_txid, not no_wait):
            click.echo("Commit not confirmed yet. Rerun later to continue.")
            return
        mt.commit_confirmed(net.get_tx(mt.commit_txid))
        save()

    if mt.state == M.COMMIT_CONFIRMED:
        mt.sign_reveal(privkey)
        save()

    if mt.state == M.REVEAL_SIGNED:
        try:
            rid = net.broadcast(mt.reveal_tx)
        except RejectedByNetworkError as exc:
            # leave state as-is; commit output is still ours
            fail(f"Reveal rejected ({exc.category}): {exc.reason}")
        mt.reveal_sent(rid)
        save()
        click.echo(f"Reveal sent: {rid}")

    if mt.state == M.REVEAL_BROADCAST_PENDING:
        if not wait_confirmed(net, mt.reveal_txid, not no_wait):
            click.echo("Reveal not confirmed yet. Rerun later to continue.")
            return
        mt.reveal_confirmed()
        save()

    if mt.state == M.COMPLETE:
        click.echo(f"Minted. Ref: {format_ref(mt.ref)}")
    else:
        fail(f"Mint stopped in state {mt.state}: {mt.error or '?'}")

# EOF
