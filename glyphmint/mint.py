#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# One NFT mint, as a small state machine.
#
#   BUILDING -> COMMIT_BROADCAST_PENDING -> COMMIT_CONFIRMED -> REVEAL_SIGNED
#            -> REVEAL_BROADCAST_PENDING -> COMPLETE
#
# Any non-terminal state can go to FAILED. Once the commit is on the network
# there is no rollback: either finish the reveal or sweep the commit output
# by other means. Callers must save() after each step; a mint resumes from
# COMMIT_CONFIRMED using the saved commit txid/vout, never by guessing them.
#
import cbor2
from cbor2 import CBORDecodeError
from .constants import *
from .exceptions import MintStateError, SigningError
from .payload import encode, decode, commitment_hash
from .script import build_commit_script, build_singleton_script
from .refs import ref_for_own_output
from .fees import estimate, reveal_size, commit_size, PER_BYTE
from .txn import (TxOut, build_commit_tx, build_reveal_tx, sign_reveal_input,
                    apply_witness, check_reveal, find_output, parse_tx, serialize_tx, txid)

BUILDING = 'building'
COMMIT_BROADCAST_PENDING = 'commit-broadcast-pending'
COMMIT_CONFIRMED = 'commit-confirmed'
REVEAL_SIGNED = 'reveal-signed'
REVEAL_BROADCAST_PENDING = 'reveal-broadcast-pending'
COMPLETE = 'complete'
FAILED = 'failed'

TERMINAL_STATES = { COMPLETE, FAILED }

NEXT_STATES = {
    BUILDING: { COMMIT_BROADCAST_PENDING },
    COMMIT_BROADCAST_PENDING: { COMMIT_CONFIRMED },
    COMMIT_CONFIRMED: { REVEAL_SIGNED },
    REVEAL_SIGNED: { REVEAL_BROADCAST_PENDING },
    REVEAL_BROADCAST_PENDING: { COMPLETE },
}

# bump when save() format changes
SAVE_VERSION = 1

class GlyphMint:
    #
    # Holds everything needed to finish one mint. Not shared between threads;
    # independent mints need independent funding coins.
    #
    def __init__(self, payload, owner_pkh, fee_rate=DEFAULT_FEE_RATE,
                        safety_margin=DEFAULT_SAFETY_MARGIN, owner_amount=DEFAULT_NFT_VALUE):
        # encoding problems surface here, before anything touches the network
        self.blob = encode(payload)
        self.owner_pkh = bytes(owner_pkh)
        self.fee_rate = fee_rate
        self.safety_margin = safety_margin
        self.owner_amount = owner_amount

        self.commit_script = build_commit_script(commitment_hash(self.blob), self.owner_pkh)

        self.state = BUILDING
        self.commit_txid = None
        self.commit_vout = None
        self.commit_value = None
        self.reveal_tx = None
        self.reveal_txid = None
        self.error = None

    def __repr__(self):
        return '<%s %s: %s>' % (self.__class__.__name__, self.state,
                                    self.commit_txid or 'not broadcast')

    def _move(self, new_state):
        if new_state not in NEXT_STATES.get(self.state, ()):
            raise MintStateError(f"Cannot go from {self.state} to {new_state}")
        self.state = new_state

    def _require(self, state):
        if self.state != state:
            raise MintStateError(f"Mint is {self.state}, need {state}")

    @property
    def payload(self):
        return decode(self.blob)

    @property
    def body_len(self):
        return len(self.blob) - len(GLYPH_MAGIC)

    @property
    def reveal_fee(self):
        return estimate(reveal_size(self.body_len), self.fee_rate,
                            self.safety_margin, unit=PER_BYTE)

    @property
    def commit_amount(self):
        # commit output pays for the reveal too
        return self.owner_amount + self.reveal_fee

    @property
    def ref(self):
        # our singleton's reference; unknown until commit confirms
        if self.commit_vout is None:
            return None
        return ref_for_own_output(self.commit_txid, self.commit_vout)

    def build_commit(self, funding, change_pkh=None):
        # Unsigned commit tx spending 'funding' (list of net.UTXO).
        # - leftover goes to change_pkh, or to miners if None
        self._require(BUILDING)

        total = sum(u.value for u in funding)
        fee = estimate(commit_size(len(funding), change_pkh is not None),
                            self.fee_rate, self.safety_margin, unit=PER_BYTE)
        change_value = total - self.commit_amount - fee
        if change_value < 0:
            raise ValueError(f"Need {self.commit_amount + fee:,} sats, "
                                f"funding has only {total:,}")

        change = (change_pkh, change_value) if change_pkh is not None else None

        return build_commit_tx(funding, self.commit_script, self.commit_amount, change)

    def commit_sent(self, commit_txid):
        self._move(COMMIT_BROADCAST_PENDING)
        self.commit_txid = commit_txid

    def commit_confirmed(self, commit_tx):
        # Record where the commit output really is, from the confirmed tx.
        self._require(COMMIT_BROADCAST_PENDING)

        if txid(commit_tx) != self.commit_txid:
            raise MintStateError("Confirmed transaction is not our commit")

        vout = find_output(commit_tx, self.commit_script)
        if vout is None:
            raise MintStateError("Commit transaction has no output with our commit script")

        self.commit_vout = vout
        self.commit_value = commit_tx.outputs[vout].value
        self._move(COMMIT_CONFIRMED)

    def build_reveal(self):
        # unsigned reveal
        self._require(COMMIT_CONFIRMED)

        singleton = build_singleton_script(self.ref, self.owner_pkh)
        return build_reveal_tx((self.commit_txid, self.commit_vout), singleton,
                                    self.owner_amount)

    def sign_reveal(self, privkey):
        unsigned = self.build_reveal()
        prevout = TxOut(self.commit_value, self.commit_script.raw)

        w = sign_reveal_input(unsigned, privkey, self.commit_script, self.commit_value,
                                self.blob, prevout=prevout)
        signed = apply_witness(unsigned, 0, w)

        # paranoid: verify what we made before anyone can broadcast it
        problems = check_reveal(signed, self.commit_script, self.commit_value)
        if problems:
            raise SigningError('Reveal failed local check: ' + '; '.join(problems))

        self.reveal_tx = signed
        self._move(REVEAL_SIGNED)

        return signed

    def reveal_sent(self, reveal_txid):
        self._move(REVEAL_BROADCAST_PENDING)
        self.reveal_txid = reveal_txid

    def reveal_confirmed(self):
        self._move(COMPLETE)

    def fail(self, reason):
        if self.state in TERMINAL_STATES:
            raise MintStateError(f"Mint already {self.state}")
        self.error = str(reason)
        self.state = FAILED

    @property
    def is_done(self):
        return self.state in TERMINAL_STATES

    def save(self):
        # CBOR bytes with everything needed to resume
        return cbor2.dumps(dict(
            v=SAVE_VERSION,
            state=self.state,
            blob=self.blob,
            owner_pkh=self.owner_pkh,
            fee_rate=self.fee_rate,
            safety_margin=self.safety_margin,
            owner_amount=self.owner_amount,
            commit_txid=self.commit_txid,
            commit_vout=self.commit_vout,
            commit_value=self.commit_value,
            reveal_tx=serialize_tx(self.reveal_tx) if self.reveal_tx else None,
            reveal_txid=self.reveal_txid,
            error=self.error,
        ), canonical=True)

    @classmethod
    def load(cls, data):
        try:
            d = cbor2.loads(data)
        except CBORDecodeError as exc:
            raise MintStateError(f"Unreadable saved mint: {exc}")

        if not isinstance(d, dict) or d.get('v') != SAVE_VERSION:
            raise MintStateError("Unknown saved mint format")

        rv = cls(decode(d['blob']), d['owner_pkh'], fee_rate=d['fee_rate'],
                    safety_margin=d['safety_margin'], owner_amount=d['owner_amount'])

        if rv.blob != d['blob']:
            # saved payload was not canonical; hashes would not match
            raise MintStateError("Saved payload does not re-encode identically")

        rv.state = d['state']
        rv.commit_txid = d['commit_txid']
        rv.commit_vout = d['commit_vout']
        rv.commit_value = d['commit_value']
        rv.reveal_tx = parse_tx(d['reveal_tx']) if d['reveal_tx'] else None
        rv.reveal_txid = d['reveal_txid']
        rv.error = d['error']

        return rv

# EOF
