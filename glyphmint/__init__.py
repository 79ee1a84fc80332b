#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#

__version__ = '0.1.0'

__all__ = [ 'payload', 'script', 'refs', 'txn', 'fees', 'mint', 'net',
            'exceptions', 'constants', 'utils' ]

# codec
from glyphmint.payload import encode, decode, commitment_hash, make_nft_payload

# the whole pipeline for one NFT
from glyphmint.mint import GlyphMint
