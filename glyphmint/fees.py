#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Fee estimates.
#
# This chain quotes rates in sats PER BYTE. Most bitcoin tools think per kB,
# so the unit is always named where a rate is taken.
#
import math
from fractions import Fraction
from .constants import MAX_SIG_SIZE, PUBKEY_SIZE, GLYPH_MAGIC
from .script import COMMIT_LEN, SINGLETON_LEN
from .utils import ser_compact_size

PER_BYTE = 'byte'
PER_KB = 'kB'

UNIT_DIVISOR = { PER_BYTE: 1, PER_KB: 1000 }

def estimate(size_bytes, rate, safety_margin=0, unit=PER_BYTE):
    # ceil(size * rate_per_byte * (1 + margin)), no float rounding surprises
    if unit not in UNIT_DIVISOR:
        raise ValueError(f"Unknown fee rate unit: {unit!r} (want {PER_BYTE!r} or {PER_KB!r})")
    if size_bytes < 0 or rate < 0 or safety_margin < 0:
        raise ValueError("size, rate and margin must not be negative")

    per_byte = Fraction(str(rate)) / UNIT_DIVISOR[unit]
    total = size_bytes * per_byte * (1 + Fraction(str(safety_margin)))

    return math.ceil(total)

def _push_size(n):
    if n < 0x4c:
        return 1 + n
    elif n <= 0xff:
        return 2 + n
    elif n <= 0xffff:
        return 3 + n
    return 5 + n

# version + locktime
_TX_OVERHEAD = 4 + 4

def _input_size(script_len):
    return 32 + 4 + len(ser_compact_size(script_len)) + script_len + 4

def _output_size(script_len):
    return 8 + len(ser_compact_size(script_len)) + script_len

def reveal_size(body_len, extra_outputs=0):
    # upper bound for a signed reveal with a payload body of body_len bytes
    # - extra outputs are assumed to be P2PKH
    sig_script = _push_size(MAX_SIG_SIZE) + _push_size(PUBKEY_SIZE) \
                    + _push_size(len(GLYPH_MAGIC)) + _push_size(body_len)
    n_out = 1 + extra_outputs

    return _TX_OVERHEAD + len(ser_compact_size(1)) + _input_size(sig_script) \
            + len(ser_compact_size(n_out)) + _output_size(SINGLETON_LEN) \
            + extra_outputs * _output_size(25)

def commit_size(n_inputs, has_change=True):
    # upper bound for a commit spending n P2PKH inputs
    sig_script = _push_size(MAX_SIG_SIZE) + _push_size(PUBKEY_SIZE)
    n_out = 2 if has_change else 1

    return _TX_OVERHEAD + len(ser_compact_size(n_inputs)) + n_inputs * _input_size(sig_script) \
            + len(ser_compact_size(n_out)) + _output_size(COMMIT_LEN) \
            + (_output_size(25) if has_change else 0)

# EOF
