#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# System constants.
#

# every glyph blob, and the reveal scriptSig, carries this marker
GLYPH_MAGIC = b'gly'

# protocol id found in payload field 'p' of an NFT
GLYPH_NFT = 2

# a reference is txid (internal byte order) + LE32 output index
REF_SIZE = 36
TXID_SIZE = 32
PUBKEY_HASH_SIZE = 20

# Script opcodes, only the ones we build or need to parse.
OP_PUSHDATA1    = 0x4c
OP_PUSHDATA2    = 0x4d
OP_PUSHDATA4    = 0x4e
OP_2            = 0x52
OP_4            = 0x54
OP_DROP         = 0x75
OP_DUP          = 0x76
OP_CAT          = 0x7e
OP_NUM2BIN      = 0x80
OP_EQUALVERIFY  = 0x88
OP_NUMEQUALVERIFY = 0x9d
OP_HASH160      = 0xa9
OP_HASH256      = 0xaa
OP_CHECKSIG     = 0xac

# introspection
OP_INPUTINDEX       = 0xc0
OP_OUTPOINTTXHASH   = 0xc8
OP_OUTPOINTINDEX    = 0xc9

# reference opcodes: all but OP_REFTYPE_OUTPUT take a 36-byte inline operand
OP_PUSHINPUTREF                 = 0xd0
OP_REQUIREINPUTREF              = 0xd1
OP_DISALLOWPUSHINPUTREF         = 0xd2
OP_DISALLOWPUSHINPUTREFSIBLING  = 0xd3
OP_PUSHINPUTREFSINGLETON        = 0xd8
OP_REFTYPE_OUTPUT               = 0xda

INLINE_REF_OPCODES = { OP_PUSHINPUTREF, OP_REQUIREINPUTREF, OP_DISALLOWPUSHINPUTREF,
                       OP_DISALLOWPUSHINPUTREFSIBLING, OP_PUSHINPUTREFSINGLETON }

# these are the ones counted in the sighash output summary
PUSH_REF_OPCODES = { OP_PUSHINPUTREF, OP_PUSHINPUTREFSINGLETON }

# SIGHASH_ALL | SIGHASH_FORKID, the only mode we produce
SIGHASH_ALL = 0x01
SIGHASH_FORKID = 0x40
SIGHASH_ANYONECANPAY = 0x80
SIGHASH_SINGLE = 0x03
SIGHASH_NONE = 0x02
DEFAULT_HASHTYPE = SIGHASH_ALL | SIGHASH_FORKID

TX_VERSION = 1
DEFAULT_SEQUENCE = 0xffffffff

# this chain quotes fee rates per byte, not per kilobyte
DEFAULT_FEE_RATE = 10_000
DEFAULT_SAFETY_MARGIN = 0.1

# value carried by the singleton output (sats)
DEFAULT_NFT_VALUE = 1

# outputs worth less than this are not relayed
DUST_LIMIT = 1

# base58check version bytes for P2PKH
ADDR_VERSION = 0x00
ADDR_VERSION_TESTNET = 0x6f
WIF_VERSION = 0x80
WIF_VERSION_TESTNET = 0xef

# upper bound of a DER signature plus hashtype byte
MAX_SIG_SIZE = 73
PUBKEY_SIZE = 33

# EOF
