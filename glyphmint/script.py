#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Script building and (light) parsing.
#
# Scripts are tagged data: Script(kind, raw). One builder per kind, no class tree.
#
# Commit script (locks the commit output):
#
#   OP_HASH256 <payload_hash:32> OP_EQUALVERIFY
#   <'gly':3> OP_EQUALVERIFY
#   OP_INPUTINDEX OP_OUTPOINTTXHASH OP_INPUTINDEX OP_OUTPOINTINDEX OP_4 OP_NUM2BIN OP_CAT
#   OP_REFTYPE_OUTPUT OP_2 OP_NUMEQUALVERIFY
#   OP_DUP OP_HASH160 <pkh:20> OP_EQUALVERIFY OP_CHECKSIG
#
# Singleton output (the NFT itself):
#
#   OP_PUSHINPUTREFSINGLETON <ref:36> OP_DROP OP_DUP OP_HASH160 <pkh:20> OP_EQUALVERIFY OP_CHECKSIG
#
# - the 36 ref bytes follow 0xd8 directly, there is no push/length byte between
#
import struct
from collections import namedtuple
from .constants import *

Script = namedtuple('Script', 'kind raw')

# byte lengths of the two templates
COMMIT_LEN = 1 + 33 + 1 + 4 + 1 + 10 + 25
SINGLETON_LEN = 1 + REF_SIZE + 1 + 25

def push_data(data):
    # minimal push of some bytes
    n = len(data)
    if n < OP_PUSHDATA1:
        return bytes([n]) + data
    elif n <= 0xff:
        return bytes([OP_PUSHDATA1, n]) + data
    elif n <= 0xffff:
        return bytes([OP_PUSHDATA2]) + struct.pack('<H', n) + data
    else:
        return bytes([OP_PUSHDATA4]) + struct.pack('<I', n) + data

def _p2pkh_tail(pubkey_hash):
    if len(pubkey_hash) != PUBKEY_HASH_SIZE:
        raise ValueError(f"pubkey hash must be {PUBKEY_HASH_SIZE} bytes")
    return bytes([OP_DUP, OP_HASH160]) + push_data(pubkey_hash) \
                + bytes([OP_EQUALVERIFY, OP_CHECKSIG])

def build_p2pkh(pubkey_hash):
    return Script('p2pkh', _p2pkh_tail(pubkey_hash))

def build_commit_script(payload_hash, pubkey_hash):
    # Script for the commit output. When spent, it checks the revealed payload
    # and insists a singleton for the spending input's outpoint is created.
    if len(payload_hash) != 32:
        raise ValueError("payload hash must be 32 bytes")

    raw = bytes([OP_HASH256]) + push_data(payload_hash) + bytes([OP_EQUALVERIFY]) \
        + push_data(GLYPH_MAGIC) + bytes([OP_EQUALVERIFY]) \
        + bytes([OP_INPUTINDEX, OP_OUTPOINTTXHASH, OP_INPUTINDEX, OP_OUTPOINTINDEX,
                    OP_4, OP_NUM2BIN, OP_CAT,
                    OP_REFTYPE_OUTPUT, OP_2, OP_NUMEQUALVERIFY]) \
        + _p2pkh_tail(pubkey_hash)

    return Script('commit', raw)

def build_singleton_script(ref, pubkey_hash):
    if len(ref) != REF_SIZE:
        raise ValueError(f"reference must be {REF_SIZE} bytes, got {len(ref)}")

    # NOTE: no push opcode here, 0xd8 consumes the next 36 bytes itself
    raw = bytes([OP_PUSHINPUTREFSINGLETON]) + bytes(ref) + bytes([OP_DROP]) \
            + _p2pkh_tail(pubkey_hash)

    return Script('singleton', raw)

def iter_script(raw):
    # yield (opcode, operand) for each op; operand is None for plain opcodes
    # - raises ValueError if a push or ref operand runs off the end
    pos = 0
    end = len(raw)
    while pos < end:
        op = raw[pos]
        pos += 1

        if 0 < op < OP_PUSHDATA1:
            n = op
        elif op == OP_PUSHDATA1:
            if pos + 1 > end: raise ValueError("truncated PUSHDATA1")
            n = raw[pos]; pos += 1
        elif op == OP_PUSHDATA2:
            if pos + 2 > end: raise ValueError("truncated PUSHDATA2")
            n, = struct.unpack_from('<H', raw, pos); pos += 2
        elif op == OP_PUSHDATA4:
            if pos + 4 > end: raise ValueError("truncated PUSHDATA4")
            n, = struct.unpack_from('<I', raw, pos); pos += 4
        elif op in INLINE_REF_OPCODES:
            n = REF_SIZE
        else:
            yield op, None
            continue

        if pos + n > end:
            raise ValueError("script truncated inside operand of 0x%02x" % op)

        yield op, bytes(raw[pos:pos+n])
        pos += n

def push_refs(raw):
    # sorted, de-duplicated refs created by this script (0xd0 / 0xd8)
    # - unparsable scripts carry no refs
    try:
        found = set(arg for op, arg in iter_script(raw) if op in PUSH_REF_OPCODES)
    except ValueError:
        return []
    return sorted(found)

def parse_commit_script(raw):
    # returns (payload_hash, pubkey_hash) or None if not exactly our template
    raw = bytes(raw)
    if len(raw) != COMMIT_LEN:
        return None

    payload_hash = raw[2:34]
    pubkey_hash = raw[-22:-2]
    if build_commit_script(payload_hash, pubkey_hash).raw != raw:
        return None

    return payload_hash, pubkey_hash

def parse_singleton_script(raw):
    # returns (ref, pubkey_hash) or None
    raw = bytes(raw)
    if len(raw) != SINGLETON_LEN or raw[0] != OP_PUSHINPUTREFSINGLETON:
        return None

    ref = raw[1:1+REF_SIZE]
    pubkey_hash = raw[-22:-2]
    if build_singleton_script(ref, pubkey_hash).raw != raw:
        return None

    return ref, pubkey_hash

def classify(raw):
    # wrap raw bytes as a tagged Script
    raw = bytes(raw)
    if parse_commit_script(raw):
        return Script('commit', raw)
    if parse_singleton_script(raw):
        return Script('singleton', raw)
    if len(raw) == 25 and raw == _p2pkh_tail(raw[3:23]):
        return Script('p2pkh', raw)
    return Script('other', raw)

def script_bytes(script):
    # accept Script, bytes or hex
    if isinstance(script, Script):
        return script.raw
    if isinstance(script, str):
        return bytes.fromhex(script)
    return bytes(script)

# EOF
