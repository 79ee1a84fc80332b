#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Wrappers for the crypto library. AKA API Cleanup
#
# My standards:
# - pubkeys: 33 bytes, always compressed
# - private key: 32 bytes
# - signatures: DER, because that's what the script interpreter wants
# - message digests (for sig/verify) are already digested
# - ECDSA verify returns bool, doesn't raise exception
#
# nice docs: <https://ofek.dev/coincurve/api/>
#
import hashlib
from coincurve import PrivateKey, PublicKey

__all__ = [ 'sha256s', 'sha256d', 'hash160',
            'CT_sig_verify', 'CT_sign', 'CT_priv_to_pubkey' ]

def sha256s(msg):
    # single-shot SHA256
    return hashlib.sha256(msg).digest()

def sha256d(msg):
    # aka HASH256
    return sha256s(sha256s(msg))

def hash160(x):
    # classic bitcoin nested hashes
    return hashlib.new('ripemd160', sha256s(x)).digest()

def CT_priv_to_pubkey(priv):
    assert len(priv) == 32
    return PrivateKey(priv).public_key.format()

def CT_sign(privkey, msg_digest):
    # returns DER signature, low-S
    assert len(msg_digest) == 32
    return PrivateKey(privkey).sign(msg_digest, hasher=None)

def CT_sig_verify(pub, msg_digest, der_sig):
    # returns True or False
    try:
        return PublicKey(pub).verify(der_sig, msg_digest, hasher=None)
    except (ValueError, TypeError):
        return False

# EOF
