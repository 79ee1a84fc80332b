#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Glyph payloads: token metadata as canonical CBOR, prefixed by the 'gly' marker.
#
# Blob contents:
#   b'gly' + canonical_cbor(payload)
#
# - payload is a mapping, see PAYLOAD_FIELDS below
# - canonical CBOR (RFC 7049 section 3.9): map keys sorted by length then
#   bytewise, shortest-form integers and lengths, definite lengths only
# - commitment hash is sha256(sha256(cbor)), marker NOT included
# - byte fields are CBOR byte strings, never base64 or hex text
#
# There is no second encoding to fall back to. If CBOR can't be produced,
# we stop.
#
from io import BytesIO
import cbor2
from cbor2 import CBORDecoder, CBORDecodeError, CBOREncodeError

from .constants import GLYPH_MAGIC, GLYPH_NFT, REF_SIZE
from .compat import sha256d
from .exceptions import EncodingError, DecodingError

PAYLOAD_FIELDS = [
    ( 'p', 'Protocol ids' ),                # list of small ints, GLYPH_NFT=2
    ( 'name', 'Display name' ),
    ( 'type', 'Type tag' ),                 # free text, like 'user' or 'container'
    ( 'main', 'On-chain image' ),           # {t: mime-type, b: raw bytes}
    ( 'loc', 'External location (URI)' ),
    ( 'in', 'Container' ),                  # [ref36]
    ( 'by', 'Author' ),                     # [ref36]
    ( 'attrs', 'Attributes' ),              # {text: scalar}
]

SCALAR_TYPES = (str, int, float, bool)

def make_nft_payload(name, image, mime, type_tag=None, loc=None,
                        container=None, author=None, attrs=None):
    # Build a payload for a new NFT. The image is required here because
    # display clients can't render an asset without one.
    if image is None or not mime:
        raise EncodingError("NFT payload requires image bytes and a MIME type")
    if not isinstance(image, (bytes, bytearray)):
        raise EncodingError("Image must be raw bytes, not %s" % type(image).__name__)

    rv = dict(p=[GLYPH_NFT], name=name, main=dict(t=mime, b=bytes(image)))

    if type_tag:
        rv['type'] = type_tag
    if loc:
        rv['loc'] = loc
    if container is not None:
        rv['in'] = [bytes(container)]
    if author is not None:
        rv['by'] = [bytes(author)]
    if attrs:
        rv['attrs'] = dict(attrs)

    return rv

def _check_payload(payload):
    # raise EncodingError on anything another party would hash differently
    if not isinstance(payload, dict):
        raise EncodingError("Payload must be a mapping")

    if 'p' not in payload:
        raise EncodingError("Missing protocol identifier (field 'p')")

    p = payload['p']
    if not isinstance(p, list) or not p \
            or not all(isinstance(i, int) and not isinstance(i, bool) for i in p):
        raise EncodingError("Field 'p' must be a non-empty list of integers")

    if not isinstance(payload.get('name'), str):
        raise EncodingError("Missing display name (field 'name')")

    for fn in ('type', 'loc'):
        if fn in payload and not isinstance(payload[fn], str):
            raise EncodingError(f"Field '{fn}' must be text")

    if 'main' in payload:
        main = payload['main']
        if not isinstance(main, dict):
            raise EncodingError("Field 'main' must be a mapping")
        if not isinstance(main.get('t'), str):
            raise EncodingError("Image MIME type (main.t) must be text")
        if not isinstance(main.get('b'), (bytes, bytearray)):
            # base64 or hex text here would hash differently than the decoded bytes
            raise EncodingError("Image data (main.b) must be raw bytes, not %s"
                                    % type(main.get('b')).__name__)

    for fn in ('in', 'by'):
        if fn not in payload:
            continue
        refs = payload[fn]
        if not isinstance(refs, list) or not refs:
            raise EncodingError(f"Field '{fn}' must be a list of references")
        for r in refs:
            if not isinstance(r, (bytes, bytearray)) or len(r) != REF_SIZE:
                raise EncodingError(f"Field '{fn}' holds a reference that is not {REF_SIZE} bytes")

    if 'attrs' in payload:
        attrs = payload['attrs']
        if not isinstance(attrs, dict):
            raise EncodingError("Field 'attrs' must be a mapping")
        for k, v in attrs.items():
            if not isinstance(k, str):
                raise EncodingError("Attribute names must be text")
            if not isinstance(v, SCALAR_TYPES):
                raise EncodingError(f"Attribute '{k}' is not a scalar value")

    # tuples come back from CBOR as lists
    for fn, v in payload.items():
        _no_tuples(fn, v)

def _no_tuples(fn, v):
    if isinstance(v, tuple):
        raise EncodingError(f"Field '{fn}' holds a tuple, use a list")
    if isinstance(v, list):
        for i in v:
            _no_tuples(fn, i)
    elif isinstance(v, dict):
        for i in v.values():
            _no_tuples(fn, i)

def encode_body(payload):
    # canonical CBOR only, no marker
    _check_payload(payload)
    try:
        return cbor2.dumps(payload, canonical=True)
    except (CBOREncodeError, TypeError, UnicodeEncodeError) as exc:
        raise EncodingError(f"CBOR encoding failed: {exc}")

def encode(payload):
    # the full glyph blob
    return GLYPH_MAGIC + encode_body(payload)

def split_blob(blob):
    # returns (marker, body)
    blob = bytes(blob)
    return blob[0:len(GLYPH_MAGIC)], blob[len(GLYPH_MAGIC):]

def decode_body(body):
    fp = BytesIO(body)
    try:
        rv = CBORDecoder(fp).decode()
    except CBORDecodeError as exc:
        raise DecodingError(f"Malformed CBOR: {exc}")

    if fp.tell() != len(body):
        raise DecodingError("Trailing bytes after CBOR payload")
    if not isinstance(rv, dict):
        raise DecodingError("Payload is not a CBOR map")

    return rv

def decode(blob):
    marker, body = split_blob(blob)
    if marker != GLYPH_MAGIC:
        raise DecodingError(f"Bad marker: {marker!r}")
    if not body:
        raise DecodingError("Empty payload")

    return decode_body(body)

def commitment_hash(blob):
    # sha256d over the CBOR body; the marker is never part of the hash
    # - blob must carry the marker, so a bare body is never mis-stripped
    marker, body = split_blob(blob)
    if marker != GLYPH_MAGIC:
        raise DecodingError(f"Bad marker: {marker!r}")
    return sha256d(body)

def is_canonical(blob):
    # True if re-encoding the decoded payload gives the exact same bytes
    try:
        return encode(decode(blob)) == bytes(blob)
    except (DecodingError, EncodingError):
        return False

# EOF
