#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Mint state machine, driven offline with hand-made "confirmed" transactions.
#
import pytest, cbor2

from glyphmint.exceptions import MintStateError, EncodingError
from glyphmint.fees import estimate
from glyphmint.mint import (GlyphMint, BUILDING, COMMIT_BROADCAST_PENDING, COMMIT_CONFIRMED,
                            REVEAL_SIGNED, REVEAL_BROADCAST_PENDING, COMPLETE, FAILED)
from glyphmint.net import UTXO
from glyphmint.refs import ref_for_own_output, find_singleton_ref
from glyphmint.script import build_p2pkh
from glyphmint.txn import (Tx, TxIn, TxOut, sign_p2pkh_input, check_reveal, txid,
                            serialize_tx)

FUNDS = 10_000_000

@pytest.fixture
def mint(payload, pkh):
    return GlyphMint(payload, pkh, fee_rate=1000, safety_margin=0.1)

@pytest.fixture
def funding():
    return [UTXO('cd'*32, 0, FUNDS, 100, True)]

def to_confirmed(mint, funding, privkey, pkh):
    # build, sign, "broadcast" and "confirm" the commit
    ctx = mint.build_commit(funding, change_pkh=pkh)
    ctx = sign_p2pkh_input(ctx, 0, privkey, FUNDS)
    mint.commit_sent(txid(ctx))
    mint.commit_confirmed(ctx)
    return ctx

def test_full_flow(mint, funding, privkey, pkh, payload):
    assert mint.state == BUILDING
    assert mint.ref is None
    assert mint.payload == payload

    ctx = mint.build_commit(funding, change_pkh=pkh)
    assert ctx.outputs[0].value == mint.commit_amount
    assert ctx.outputs[0].script == mint.commit_script.raw
    assert sum(o.value for o in ctx.outputs) < FUNDS

    ctx = sign_p2pkh_input(ctx, 0, privkey, FUNDS)
    mint.commit_sent(txid(ctx))
    assert mint.state == COMMIT_BROADCAST_PENDING

    mint.commit_confirmed(ctx)
    assert mint.state == COMMIT_CONFIRMED
    assert mint.commit_vout == 0
    assert mint.commit_value == mint.commit_amount
    assert mint.ref == ref_for_own_output(txid(ctx), 0)

    rtx = mint.sign_reveal(privkey)
    assert mint.state == REVEAL_SIGNED
    assert mint.reveal_tx == rtx
    assert check_reveal(rtx, mint.commit_script, mint.commit_value) == []
    assert find_singleton_ref(rtx) == (0, mint.ref)

    # what's left over for miners covers the reveal
    paid = mint.commit_value - sum(o.value for o in rtx.outputs)
    assert paid == mint.reveal_fee
    assert paid >= estimate(len(serialize_tx(rtx)), 1000)

    mint.reveal_sent(txid(rtx))
    assert mint.state == REVEAL_BROADCAST_PENDING
    assert not mint.is_done

    mint.reveal_confirmed()
    assert mint.state == COMPLETE
    assert mint.is_done

def test_no_change(mint, funding):
    ctx = mint.build_commit(funding)
    assert len(ctx.outputs) == 1

def test_insufficient_funds(mint):
    with pytest.raises(ValueError) as err:
        mint.build_commit([UTXO('cd'*32, 0, 100, 1, True)])
    assert 'funding has only 100' in str(err.value)

def test_bad_payload(pkh):
    with pytest.raises(EncodingError):
        GlyphMint(dict(name='no protocol'), pkh)

def test_illegal_transitions(mint, funding, privkey, pkh):
    with pytest.raises(MintStateError):
        mint.build_reveal()
    with pytest.raises(MintStateError):
        mint.reveal_sent('00'*32)
    with pytest.raises(MintStateError):
        mint.reveal_confirmed()
    with pytest.raises(MintStateError):
        mint.sign_reveal(privkey)
    assert mint.state == BUILDING

    to_confirmed(mint, funding, privkey, pkh)

    with pytest.raises(MintStateError):
        mint.build_commit(funding)
    with pytest.raises(MintStateError):
        mint.commit_sent('00'*32)
    with pytest.raises(MintStateError):
        mint.reveal_confirmed()
    assert mint.state == COMMIT_CONFIRMED

def test_confirmed_wrong_tx(mint, funding, privkey, pkh):
    ctx = mint.build_commit(funding, change_pkh=pkh)
    mint.commit_sent('ee' * 32)

    with pytest.raises(MintStateError):
        mint.commit_confirmed(ctx)
    assert mint.state == COMMIT_BROADCAST_PENDING

def test_confirmed_without_commit_output(mint, pkh):
    tx = Tx(1, [TxIn('cd'*32, 0, b'', 0xffffffff)], [TxOut(5000, build_p2pkh(pkh).raw)], 0)
    mint.commit_sent(txid(tx))
    with pytest.raises(MintStateError):
        mint.commit_confirmed(tx)

def test_commit_at_vout_1(mint, privkey, pkh):
    # someone else's wallet put the commit output second
    tx = Tx(1, [TxIn('cd'*32, 0, b'', 0xffffffff)],
            [TxOut(5000, build_p2pkh(pkh).raw),
             TxOut(mint.commit_amount, mint.commit_script.raw)], 0)

    mint.commit_sent(txid(tx))
    mint.commit_confirmed(tx)
    assert mint.commit_vout == 1
    assert mint.ref.hex().endswith('01000000')

    rtx = mint.sign_reveal(privkey)
    assert rtx.inputs[0].txid == txid(tx)
    assert rtx.inputs[0].vout == 1
    assert check_reveal(rtx, mint.commit_script, mint.commit_value) == []

def test_resume(mint, funding, privkey, pkh):
    to_confirmed(mint, funding, privkey, pkh)

    saved = mint.save()
    again = GlyphMint.load(saved)

    assert again.state == COMMIT_CONFIRMED
    assert again.blob == mint.blob
    assert again.ref == mint.ref
    assert again.commit_value == mint.commit_value
    assert again.save() == saved

    # signatures are deterministic, so both copies make the same reveal
    assert again.sign_reveal(privkey) == mint.sign_reveal(privkey)

    again = GlyphMint.load(mint.save())
    assert again.state == REVEAL_SIGNED
    assert again.reveal_tx == mint.reveal_tx

@pytest.mark.parametrize('data', [ b'', b'\xa1', cbor2.dumps([1]), cbor2.dumps(dict(v=99)) ])
def test_load_garbage(data):
    with pytest.raises(MintStateError):
        GlyphMint.load(data)

def test_load_noncanonical(mint):
    d = cbor2.loads(mint.save())
    d['blob'] = b'gly' + cbor2.dumps(dict(name='x', p=[2]))

    with pytest.raises(MintStateError):
        GlyphMint.load(cbor2.dumps(d))

def test_fail(mint):
    mint.fail('commit rejected')
    assert mint.state == FAILED
    assert mint.error == 'commit rejected'
    assert mint.is_done

    with pytest.raises(MintStateError):
        mint.fail('again')

    again = GlyphMint.load(mint.save())
    assert again.state == FAILED
    assert again.error == 'commit rejected'

def test_fail_after_complete(mint, funding, privkey, pkh):
    to_confirmed(mint, funding, privkey, pkh)
    rtx = mint.sign_reveal(privkey)
    mint.reveal_sent(txid(rtx))
    mint.reveal_confirmed()

    with pytest.raises(MintStateError):
        mint.fail('too late')
    assert mint.state == COMPLETE

# EOF
