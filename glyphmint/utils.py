#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
import base58, struct
from binascii import b2a_hex
from .constants import *
from .compat import hash160, CT_priv_to_pubkey

# show bytes as hex in a string
B2A = lambda x: b2a_hex(x).decode('ascii')

# Serialization/deserialization tools
def ser_compact_size(l):
    if l < 253:
        return struct.pack("B", l)
    elif l < 0x10000:
        return struct.pack("<BH", 253, l)
    elif l < 0x100000000:
        return struct.pack("<BI", 254, l)
    else:
        return struct.pack("<BQ", 255, l)

def deser_compact_size(buf, pos):
    # returns (value, new position); raises ValueError on truncation
    if pos >= len(buf):
        raise ValueError("truncated compact size")
    first = buf[pos]
    if first < 253:
        return first, pos+1

    fmt, width = { 253: ('<H', 2), 254: ('<I', 4), 255: ('<Q', 8) }[first]
    if pos + 1 + width > len(buf):
        raise ValueError("truncated compact size")

    return struct.unpack_from(fmt, buf, pos+1)[0], pos+1+width

def force_bytes(foo):
    # accept hex strings where bytes are wanted
    return bytes.fromhex(foo) if isinstance(foo, str) else bytes(foo)

def txid_to_bytes(txid):
    # display order (hex) to internal byte order
    raw = force_bytes(txid)
    if len(raw) != TXID_SIZE:
        raise ValueError(f"txid must be {TXID_SIZE} bytes, got {len(raw)}")
    return raw[::-1]

def render_address(pubkey, testnet=False):
    # make the text string used as a payment address (P2PKH)
    if len(pubkey) == 32:
        # actually a private key, convert
        pubkey = CT_priv_to_pubkey(pubkey)

    return render_pkh_address(hash160(pubkey), testnet)

def render_pkh_address(pkh, testnet=False):
    prefix = bytes([ADDR_VERSION if not testnet else ADDR_VERSION_TESTNET])
    return base58.b58encode_check(prefix + pkh).decode('ascii')

def address_to_pkh(addr):
    # reverse of render_pkh_address; either network is accepted
    try:
        raw = base58.b58decode_check(addr)
    except ValueError:
        raise ValueError(f"Bad checksum in address: {addr}")

    if len(raw) != 1 + PUBKEY_HASH_SIZE or raw[0] not in { ADDR_VERSION, ADDR_VERSION_TESTNET }:
        raise ValueError(f"Not a P2PKH address: {addr}")

    return raw[1:]

def decode_privkey(text):
    # accept WIF (compressed only) or 64 hex digits; returns 32 bytes
    text = text.strip()
    if len(text) == 64:
        try:
            return bytes.fromhex(text)
        except ValueError:
            pass

    try:
        raw = base58.b58decode_check(text)
    except ValueError:
        raise ValueError("Private key must be WIF or 64 hex digits")

    if len(raw) != 34 or raw[0] not in { WIF_VERSION, WIF_VERSION_TESTNET } or raw[-1] != 0x01:
        raise ValueError("Only compressed-key WIF is supported")

    return raw[1:33]

def render_sats_value(c, u):
    # string value for humans: making this hard to parse on purpose
    if not c and not u:
        return '-zero-'
    elif not u:
        return f'{c:,} sats'
    elif c:
        return f'{c:,} sats (+{u:,} soon)'
    else:
        return f'-zero- (+{u:,} soon)'

# EOF
