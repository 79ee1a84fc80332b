#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# References: 36 bytes that name an issuing outpoint.
#
#   ref = reverse(txid as displayed) + LE32(vout)
#
# Two ways to get one, and they are NOT interchangeable:
#
# - our own new singleton: computed from the COMMIT txid and the commit output's
#   index (the outpoint being spent by the reveal), never from the reveal txid
#
# - someone else's asset (container, author): copied byte for byte out of that
#   asset's broadcast output script. Do not rebuild it from a txid you happen
#   to know; the reveal txid is not the commit txid.
#
import struct
from .constants import REF_SIZE, OP_PUSHINPUTREFSINGLETON
from .exceptions import MalformedReferenceError
from .script import script_bytes, parse_singleton_script
from .utils import txid_to_bytes, B2A

def ref_for_own_output(commit_txid, commit_vout):
    # the ref our reveal's singleton output must carry
    if not (0 <= commit_vout <= 0xffffffff):
        raise ValueError(f"output index out of range: {commit_vout}")
    return txid_to_bytes(commit_txid) + struct.pack('<I', commit_vout)

def ref_from_confirmed_output(script):
    # pull the ref out of a singleton output script that is already on chain
    # - accepts hex or bytes
    try:
        raw = script_bytes(script)
    except ValueError:
        raise MalformedReferenceError("Output script is not valid hex")

    if len(raw) < 1 + REF_SIZE:
        raise MalformedReferenceError(f"Output script too short for a reference: {len(raw)} bytes")
    if raw[0] != OP_PUSHINPUTREFSINGLETON:
        raise MalformedReferenceError("Output script does not start with "
                                        "OP_PUSHINPUTREFSINGLETON (0x%02x)" % raw[0])

    return raw[1:1+REF_SIZE]

def ref_to_outpoint(ref):
    # (txid hex in display order, vout)
    if len(ref) != REF_SIZE:
        raise MalformedReferenceError(f"Reference must be {REF_SIZE} bytes")
    vout, = struct.unpack('<I', ref[32:])
    return B2A(ref[0:32][::-1]), vout

def format_ref(ref):
    # human form: txid_vout
    txid, vout = ref_to_outpoint(ref)
    return f'{txid}_{vout}'

def parse_ref(text):
    # accepts 'txid_vout', 'txid:vout', or 72 hex digits of raw ref
    text = text.strip()
    for sep in '_:':
        if sep in text:
            try:
                txid, vout = text.split(sep)
                return ref_for_own_output(txid, int(vout))
            except ValueError as exc:
                raise MalformedReferenceError(f"Cannot parse reference: {text} ({exc})")

    try:
        raw = bytes.fromhex(text)
    except ValueError:
        raise MalformedReferenceError(f"Cannot parse reference: {text}")
    if len(raw) != REF_SIZE:
        raise MalformedReferenceError(f"Reference must be {REF_SIZE} bytes")
    return raw

def find_singleton_ref(tx):
    # scan a confirmed transaction's outputs for the singleton we minted
    # - returns (vout, ref) of the first one, or None
    for n, out in enumerate(tx.outputs):
        got = parse_singleton_script(out.script)
        if got:
            return n, got[0]

    return None

def ref_from_confirmed_tx(tx, vout=None):
    # ref of an existing asset, for 'in'/'by' links
    # - vout=None means: the first singleton output in that tx
    if vout is None:
        found = find_singleton_ref(tx)
        if not found:
            raise MalformedReferenceError("Transaction has no singleton output")
        vout = found[0]

    if not (0 <= vout < len(tx.outputs)):
        raise MalformedReferenceError(f"Transaction has no output #{vout}")

    return ref_from_confirmed_output(tx.outputs[vout].script)

# EOF
