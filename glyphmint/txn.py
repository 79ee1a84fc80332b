#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Transactions: model, (de)serialization, commit/reveal assembly and signing.
#
# - wire format is legacy bitcoin (no segwit); txid is sha256d, shown reversed
# - signatures use SIGHASH_ALL|FORKID and the chain's digest algo, which is
#   BIP-143 layout plus a summary hash of every output's refs (hashOutputHashes)
#
#   preimage = version4 | hashPrevouts | hashSequence | outpoint36 | varbytes(script_code)
#            | amount8 | sequence4 | hashOutputHashes | hashOutputs | locktime4 | hashtype4
#
#   hashOutputHashes = sha256d( for each output:
#        value8 | sha256d(script) | LE32(n_refs) | sha256d(sorted pushed refs) or 32 zeros )
#
import struct
from collections import namedtuple
from .constants import *
from .compat import sha256d, hash160, CT_sign, CT_sig_verify, CT_priv_to_pubkey
from .exceptions import SigningError
from .payload import split_blob, is_canonical
from .script import (Script, push_data, build_p2pkh, iter_script, push_refs,
                        script_bytes, parse_commit_script, parse_singleton_script)
from .refs import ref_for_own_output
from .utils import ser_compact_size, deser_compact_size, txid_to_bytes, B2A

# txid is hex, display order (same as explorers show)
TxIn = namedtuple('TxIn', 'txid vout script sequence')
TxOut = namedtuple('TxOut', 'value script')
Tx = namedtuple('Tx', 'version inputs outputs locktime')

# the scriptSig of a reveal, in the order the commit script pops them
RevealWitness = namedtuple('RevealWitness', 'sig pubkey marker payload')

ZERO32 = bytes(32)

def _ser_outpoint(txin):
    return txid_to_bytes(txin.txid) + struct.pack('<I', txin.vout)

def _ser_output(out):
    return struct.pack('<Q', out.value) + ser_compact_size(len(out.script)) + out.script

def serialize_tx(tx):
    rv = struct.pack('<i', tx.version) + ser_compact_size(len(tx.inputs))
    for i in tx.inputs:
        rv += _ser_outpoint(i) + ser_compact_size(len(i.script)) + i.script \
                + struct.pack('<I', i.sequence)

    rv += ser_compact_size(len(tx.outputs))
    for o in tx.outputs:
        rv += _ser_output(o)

    return rv + struct.pack('<I', tx.locktime)

def parse_tx(raw):
    # bytes or hex into Tx; raises ValueError on garbage
    raw = script_bytes(raw)
    pos = 0

    def take(n):
        nonlocal pos
        if pos + n > len(raw):
            raise ValueError("truncated transaction")
        rv = raw[pos:pos+n]
        pos += n
        return rv

    def take_varbytes():
        nonlocal pos
        n, pos = deser_compact_size(raw, pos)
        return take(n)

    version, = struct.unpack('<i', take(4))

    n_in, pos = deser_compact_size(raw, pos)
    inputs = []
    for _ in range(n_in):
        txid = B2A(take(32)[::-1])
        vout, = struct.unpack('<I', take(4))
        script = take_varbytes()
        seq, = struct.unpack('<I', take(4))
        inputs.append(TxIn(txid, vout, script, seq))

    n_out, pos = deser_compact_size(raw, pos)
    outputs = []
    for _ in range(n_out):
        value, = struct.unpack('<Q', take(8))
        outputs.append(TxOut(value, take_varbytes()))

    locktime, = struct.unpack('<I', take(4))
    if pos != len(raw):
        raise ValueError("trailing bytes after transaction")

    return Tx(version, inputs, outputs, locktime)

def tx_hash(tx):
    # internal byte order
    return sha256d(serialize_tx(tx))

def txid(tx):
    return B2A(tx_hash(tx)[::-1])

def find_output(tx, script):
    # index of first output paying to exactly this script, or None
    want = script_bytes(script)
    for n, o in enumerate(tx.outputs):
        if o.script == want:
            return n
    return None

def build_commit_tx(funding, commit_script, commit_amount, change=None):
    # Ordinary spend of funding UTXO(s) into the commit output.
    # - funding: objects with .txid and .vout (see net.UTXO)
    # - change: optional (pubkey_hash, value), dropped if dust
    # - inputs are left unsigned: these are plain wallet coins
    if not funding:
        raise ValueError("need at least one funding input")
    if commit_amount < DUST_LIMIT:
        raise ValueError("commit amount is below dust")

    inputs = [TxIn(u.txid, u.vout, b'', DEFAULT_SEQUENCE) for u in funding]
    outputs = [TxOut(commit_amount, script_bytes(commit_script))]

    if change:
        pkh, value = change
        if value >= DUST_LIMIT:
            outputs.append(TxOut(value, build_p2pkh(pkh).raw))

    return Tx(TX_VERSION, inputs, outputs, 0)

def build_reveal_tx(commit_outpoint, singleton_script, owner_amount, extra_outputs=()):
    # Spend the commit output; first output is the new singleton.
    txid_, vout = commit_outpoint
    if owner_amount < DUST_LIMIT:
        raise ValueError("singleton output amount is below dust")

    inputs = [TxIn(txid_, vout, b'', DEFAULT_SEQUENCE)]
    outputs = [TxOut(owner_amount, script_bytes(singleton_script))] + list(extra_outputs)

    return Tx(TX_VERSION, inputs, outputs, 0)

def _output_summary(out):
    # value, script hash, and the refs that output pushes
    refs = push_refs(out.script)
    rv = struct.pack('<Q', out.value) + sha256d(out.script) + struct.pack('<I', len(refs))
    rv += sha256d(b''.join(refs)) if refs else ZERO32
    return rv

def signature_preimage(tx, idx, script_code, amount, hashtype=DEFAULT_HASHTYPE):
    # Bytes that get double-hashed and signed for input #idx.
    # - script_code is the FULL script of the output being spent
    if not (hashtype & SIGHASH_FORKID):
        raise ValueError("only FORKID signatures are valid on this chain")
    if not (0 <= idx < len(tx.inputs)):
        raise ValueError(f"no input #{idx}")

    base = hashtype & 0x1f
    anyone = bool(hashtype & SIGHASH_ANYONECANPAY)
    script_code = script_bytes(script_code)

    hash_prevouts = hash_sequence = hash_outputs = hash_output_hashes = ZERO32

    if not anyone:
        hash_prevouts = sha256d(b''.join(_ser_outpoint(i) for i in tx.inputs))

    if not anyone and base not in (SIGHASH_SINGLE, SIGHASH_NONE):
        hash_sequence = sha256d(b''.join(struct.pack('<I', i.sequence) for i in tx.inputs))

    if base not in (SIGHASH_SINGLE, SIGHASH_NONE):
        hash_output_hashes = sha256d(b''.join(_output_summary(o) for o in tx.outputs))
        hash_outputs = sha256d(b''.join(_ser_output(o) for o in tx.outputs))
    elif base == SIGHASH_SINGLE and idx < len(tx.outputs):
        hash_output_hashes = sha256d(_output_summary(tx.outputs[idx]))
        hash_outputs = sha256d(_ser_output(tx.outputs[idx]))

    me = tx.inputs[idx]
    return struct.pack('<i', tx.version) + hash_prevouts + hash_sequence \
                + _ser_outpoint(me) \
                + ser_compact_size(len(script_code)) + script_code \
                + struct.pack('<Q', amount) + struct.pack('<I', me.sequence) \
                + hash_output_hashes + hash_outputs \
                + struct.pack('<I', tx.locktime) + struct.pack('<I', hashtype)

def signature_hash(tx, idx, script_code, amount, hashtype=DEFAULT_HASHTYPE):
    # digest to be signed for input #idx
    # - script_code is the FULL script of the output being spent
    return sha256d(signature_preimage(tx, idx, script_code, amount, hashtype))

def sign_input(tx, idx, privkey, script_code, amount, hashtype=DEFAULT_HASHTYPE):
    # DER signature with hashtype byte appended
    md = signature_hash(tx, idx, script_code, amount, hashtype)
    return CT_sign(privkey, md) + bytes([hashtype])

def set_input_script(tx, idx, script):
    inputs = list(tx.inputs)
    inputs[idx] = inputs[idx]._replace(script=script)
    return tx._replace(inputs=inputs)

def sign_p2pkh_input(tx, idx, privkey, amount):
    # For the commit's funding inputs: plain P2PKH, returns updated Tx
    pubkey = CT_priv_to_pubkey(privkey)
    script_code = build_p2pkh(hash160(pubkey))
    sig = sign_input(tx, idx, privkey, script_code, amount)
    return set_input_script(tx, idx, push_data(sig) + push_data(pubkey))

def sign_reveal_input(unsigned_tx, privkey, prior_script, prior_amount, blob, prevout=None):
    # Sign the reveal's only input, which spends the commit output.
    #
    # Wallets won't sign this for us: they don't know the commit script. The
    # digest must cover the full commit script, not a P2PKH subscript.
    #
    # - blob is the full glyph blob (marker + CBOR)
    # - prevout, if given, is the TxOut from the confirmed commit tx
    # - returns RevealWitness, see apply_witness()
    prior_script = script_bytes(prior_script)

    if prevout is not None:
        if prevout.script != prior_script:
            raise SigningError("Prior script does not match the commit output being spent")
        if prevout.value != prior_amount:
            raise SigningError(f"Prior amount {prior_amount} does not match "
                                f"commit output value {prevout.value}")

    parsed = parse_commit_script(prior_script)
    if not parsed:
        raise SigningError("Prior script is not a glyph commit script")
    payload_hash, pubkey_hash = parsed

    marker, body = split_blob(blob)
    if marker != GLYPH_MAGIC:
        raise SigningError("Payload blob lacks the 'gly' marker")
    if sha256d(body) != payload_hash:
        raise SigningError("Payload does not hash to the value in the commit script")

    pubkey = CT_priv_to_pubkey(privkey)
    if hash160(pubkey) != pubkey_hash:
        raise SigningError("Private key does not match pubkey hash in commit script")

    if len(unsigned_tx.inputs) < 1:
        raise SigningError("Reveal transaction has no input")
    spend = unsigned_tx.inputs[0]

    first = parse_singleton_script(unsigned_tx.outputs[0].script) if unsigned_tx.outputs else None
    if not first:
        raise SigningError("First reveal output is not a singleton")
    if first[0] != ref_for_own_output(spend.txid, spend.vout):
        raise SigningError("Singleton reference does not match the commit outpoint")

    sig = sign_input(unsigned_tx, 0, privkey, prior_script, prior_amount)

    return RevealWitness(sig, pubkey, GLYPH_MAGIC, body)

def apply_witness(tx, idx, witness):
    # scriptSig is the witness items pushed in order
    return set_input_script(tx, idx, b''.join(push_data(i) for i in witness))

def check_reveal(tx, prior_script, prior_amount, idx=0):
    # Verify a signed reveal against the commit script, locally.
    # - returns list of problems (empty when good)
    prior_script = script_bytes(prior_script)
    parsed = parse_commit_script(prior_script)
    if not parsed:
        return ['prior script is not a glyph commit script']
    payload_hash, pubkey_hash = parsed

    if not (0 <= idx < len(tx.inputs)):
        return [f'no input #{idx}']
    spend = tx.inputs[idx]

    try:
        ops = list(iter_script(spend.script))
    except ValueError as exc:
        return [f'unparsable scriptSig: {exc}']

    if len(ops) != 4 or any(arg is None for _, arg in ops):
        return ['scriptSig must be exactly 4 data pushes: sig, pubkey, marker, payload']

    w = RevealWitness(*[arg for _, arg in ops])
    problems = []

    if w.marker != GLYPH_MAGIC:
        problems.append("third push is not the 'gly' marker")
    # same HASH256 the commit script runs over the pushed bytes
    if sha256d(w.payload) != payload_hash:
        problems.append('payload does not match commitment hash')
    elif not is_canonical(GLYPH_MAGIC + w.payload):
        problems.append('payload is not canonical CBOR')
    if hash160(w.pubkey) != pubkey_hash:
        problems.append('pubkey does not match commit script')

    if not w.sig or w.sig[-1] != DEFAULT_HASHTYPE:
        problems.append('signature hashtype is not ALL|FORKID')
    else:
        md = signature_hash(tx, idx, prior_script, prior_amount, w.sig[-1])
        if not CT_sig_verify(w.pubkey, md, w.sig[:-1]):
            problems.append('signature does not verify over commit script')

    want = ref_for_own_output(spend.txid, spend.vout)
    if not any(parse_singleton_script(o.script) and parse_singleton_script(o.script)[0] == want
                    for o in tx.outputs):
        problems.append('no singleton output carries the commit outpoint reference')

    return problems

# EOF
