#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# References: derived for our own output, extracted for everyone else's.
#
import os, pytest

from glyphmint.exceptions import MalformedReferenceError
from glyphmint.refs import (ref_for_own_output, ref_from_confirmed_output, ref_from_confirmed_tx,
                                ref_to_outpoint, format_ref, parse_ref, find_singleton_ref)
from glyphmint.script import build_singleton_script, build_p2pkh, build_commit_script
from glyphmint.txn import Tx, TxIn, TxOut

COMMIT_TXID = '6afb402d085b2214b44853dad42499b5a02b823153e2789bb2bfb0e522693c26'
EXPECT_REF = '263c6922e5b0bfb29b78e25331823ba0b59924d4da5348b414225b082d40fb6a00000000'

def test_own_output_vector():
    ref = ref_for_own_output(COMMIT_TXID, 0)
    assert ref.hex() == EXPECT_REF
    assert len(ref) == 36

def test_own_output_index():
    assert ref_for_own_output(COMMIT_TXID, 1).hex() == EXPECT_REF[:-8] + '01000000'
    assert ref_for_own_output(COMMIT_TXID, 258).hex() == EXPECT_REF[:-8] + '02010000'

@pytest.mark.parametrize('txid, vout', [
    (COMMIT_TXID[:-2], 0),
    (COMMIT_TXID, -1),
    (COMMIT_TXID, 2**32),
])
def test_own_output_bad(txid, vout):
    with pytest.raises(ValueError):
        ref_for_own_output(txid, vout)

def test_extract_roundtrip():
    for _ in range(25):
        ref = os.urandom(36)
        pkh = os.urandom(20)
        s = build_singleton_script(ref, pkh)
        assert ref_from_confirmed_output(s.raw) == ref
        assert ref_from_confirmed_output(s.raw.hex()) == ref
        assert ref_from_confirmed_output(s) == ref

def test_extract_vector():
    script = 'd8' + EXPECT_REF + '7576a914' + '00'*20 + '88ac'
    assert ref_from_confirmed_output(script).hex() == EXPECT_REF

def test_container_ref_is_extracted_not_derived():
    # A container was minted by commit COMMIT_TXID:0 and revealed in a
    # different tx. Its ref comes from the commit, so rebuilding it from the
    # reveal txid gives an orphan ref.
    reveal_txid = 'ab' * 32
    container_script = build_singleton_script(ref_for_own_output(COMMIT_TXID, 0),
                                                    bytes(20)).raw.hex()

    got = ref_from_confirmed_output(container_script)
    assert got.hex() == container_script[2:2+72]
    assert got.hex() == EXPECT_REF

    wrong = bytes.fromhex(reveal_txid)[::-1] + bytes(4)
    assert got != wrong

def test_extract_malformed():
    with pytest.raises(MalformedReferenceError):
        ref_from_confirmed_output(build_p2pkh(bytes(20)).raw)       # wrong opcode
    with pytest.raises(MalformedReferenceError):
        ref_from_confirmed_output('d8' + '00'*35)                   # too short
    with pytest.raises(MalformedReferenceError):
        ref_from_confirmed_output(b'')
    with pytest.raises(MalformedReferenceError):
        ref_from_confirmed_output('not hex')

def test_outpoint_forms():
    ref = bytes.fromhex(EXPECT_REF)
    assert ref_to_outpoint(ref) == (COMMIT_TXID, 0)
    assert format_ref(ref) == COMMIT_TXID + '_0'

    assert parse_ref(COMMIT_TXID + '_0') == ref
    assert parse_ref(COMMIT_TXID + ':0') == ref
    assert parse_ref(EXPECT_REF) == ref

    with pytest.raises(MalformedReferenceError):
        parse_ref('zz')
    with pytest.raises(MalformedReferenceError):
        parse_ref('00' * 35)
    with pytest.raises(MalformedReferenceError):
        ref_to_outpoint(bytes(35))

def test_from_confirmed_tx():
    ref = os.urandom(36)
    tx = Tx(1, [TxIn('11'*32, 0, b'', 0xffffffff)],
            [TxOut(5000, build_p2pkh(bytes(20)).raw),
             TxOut(1, build_singleton_script(ref, bytes(20)).raw)], 0)

    assert find_singleton_ref(tx) == (1, ref)
    assert ref_from_confirmed_tx(tx) == ref
    assert ref_from_confirmed_tx(tx, 1) == ref

    with pytest.raises(MalformedReferenceError):
        ref_from_confirmed_tx(tx, 0)
    with pytest.raises(MalformedReferenceError):
        ref_from_confirmed_tx(tx, 5)

    plain = tx._replace(outputs=tx.outputs[:1])
    assert find_singleton_ref(plain) is None
    with pytest.raises(MalformedReferenceError):
        ref_from_confirmed_tx(plain)

def test_commit_script_is_not_a_ref():
    with pytest.raises(MalformedReferenceError):
        ref_from_confirmed_output(build_commit_script(bytes(32), bytes(20)).raw)

# EOF
