#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Payload codec: canonical CBOR, marker, commitment hash.
#
import pytest, hashlib, base64, cbor2

from glyphmint.constants import GLYPH_NFT
from glyphmint.exceptions import EncodingError, DecodingError
from glyphmint.payload import (encode, decode, encode_body, commitment_hash, is_canonical,
                                make_nft_payload, split_blob)

from conftest import FAKE_PNG

def test_roundtrip(payload):
    assert decode(encode(payload)) == payload

def test_roundtrip_accepted_shapes():
    # whatever encode() takes must come back equal
    p = dict(p=[2, 7], name='x', extra=dict(tags=['a', 'b'], n=[1, [2, 3]]),
                by=[b'\x01' * 36])
    assert decode(encode(p)) == p

def test_roundtrip_links():
    p = make_nft_payload('Child', FAKE_PNG, 'image/png',
                            container=bytes(range(36)), author=b'\xaa' * 36,
                            attrs=dict(n=1, ok=True, pi=1.5, s='x'))
    got = decode(encode(p))
    assert got == p
    assert got['in'] == [bytes(range(36))]
    assert got['by'] == [b'\xaa' * 36]
    assert isinstance(got['main']['b'], bytes)

def test_exact_bytes():
    # keys sorted length-first: 'p' before 'name'
    blob = encode(dict(name='x', p=[2]))
    assert blob == b'gly' + bytes.fromhex('a2' '6170' '8102' '646e616d65' '6178')

def test_key_order_does_not_matter(payload):
    flipped = dict(reversed(list(payload.items())))
    assert list(flipped) != list(payload)
    assert encode(flipped) == encode(payload)

def test_marker(blob):
    marker, body = split_blob(blob)
    assert marker == b'gly'
    assert body[0] & 0xe0 == 0xa0          # CBOR map

def test_make_sets_protocol():
    p = make_nft_payload('a', b'img', 'image/png')
    assert p['p'] == [GLYPH_NFT]
    assert p['main'] == dict(t='image/png', b=b'img')

@pytest.mark.parametrize('image', [None, 'iVBORw0KGgo=', bytes(3).hex()])
def test_make_needs_image_bytes(image):
    with pytest.raises(EncodingError):
        make_nft_payload('a', image, 'image/png')

def test_make_needs_mime():
    with pytest.raises(EncodingError):
        make_nft_payload('a', b'img', '')

def test_missing_protocol():
    with pytest.raises(EncodingError) as err:
        encode(dict(name='x'))
    assert "'p'" in str(err.value)

def test_missing_name():
    with pytest.raises(EncodingError):
        encode(dict(p=[2]))

def test_text_image_rejected(payload):
    # base64 text instead of bytes would hash differently elsewhere
    payload['main']['b'] = base64.b64encode(FAKE_PNG).decode('ascii')
    with pytest.raises(EncodingError) as err:
        encode(payload)
    assert 'raw bytes' in str(err.value)

@pytest.mark.parametrize('field, value', [
    ('p', []),
    ('p', ['nft']),
    ('p', [True]),
    ('type', 7),
    ('loc', b'ipfs://x'),
    ('main', 'image'),
    ('main', dict(b=b'x')),
    ('in', b'\x00' * 36),
    ('in', [b'\x00' * 35]),
    ('by', [bytes(36).hex()]),
    ('attrs', dict(colors=['red'])),
    ('attrs', {1: 'one'}),
    ('name', '\ud800'),                     # lone surrogate, not UTF-8
    ('type', 'bad\udcff'),
    ('attrs', {'\udcff': 1}),
    ('p', (2,)),                            # tuples come back as lists
    ('in', (b'\x00' * 36,)),
    ('extra', [1, (2, 3)]),
])
def test_bad_fields(payload, field, value):
    payload[field] = value
    with pytest.raises(EncodingError):
        encode(payload)

def test_unencodable_extra_field(payload):
    payload['extra'] = object()
    with pytest.raises(EncodingError):
        encode(payload)

def test_bad_marker(blob):
    with pytest.raises(DecodingError) as err:
        decode(b'xyz' + blob[3:])
    assert 'marker' in str(err.value)

@pytest.mark.parametrize('raw', [
    b'gly',                                     # empty
    b'gly' + bytes.fromhex('a261'),             # truncated
    b'gly' + cbor2.dumps([1, 2]),               # not a map
    b'gly' + cbor2.dumps(dict(p=[2], name='x')) + b'\x00',      # trailing junk
])
def test_malformed(raw):
    with pytest.raises(DecodingError):
        decode(raw)

def test_commitment_hash(blob):
    body = blob[3:]
    expect = hashlib.sha256(hashlib.sha256(body).digest()).digest()

    assert commitment_hash(blob) == expect              # marker is never hashed
    assert commitment_hash(bytearray(blob)) == expect
    assert len(expect) == 32

    # a bare body is refused, not guessed at
    with pytest.raises(DecodingError):
        commitment_hash(body)
    with pytest.raises(DecodingError):
        commitment_hash(b'gl')

def test_commitment_hash_changes(payload):
    h1 = commitment_hash(encode(payload))
    payload['name'] += '!'
    assert commitment_hash(encode(payload)) != h1

def test_canonical(blob):
    assert is_canonical(blob)

    # insertion order kept when not canonical: 'name' lands before 'p'
    loose = b'gly' + cbor2.dumps(dict(name='x', p=[2]))
    assert not is_canonical(loose)
    assert decode(loose) == dict(p=[2], name='x')

    assert not is_canonical(b'nope')

def test_encode_body(payload, blob):
    assert encode_body(payload) == blob[3:]

# EOF
