#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
import pytest, json

from glyphmint.compat import hash160, sha256d, CT_priv_to_pubkey
from glyphmint.payload import make_nft_payload, encode

# tiny PNG header; contents don't matter, only that it's bytes
FAKE_PNG = bytes.fromhex('89504e470d0a1a0a0000000d49484452') + bytes(range(64))

@pytest.fixture(scope='session')
def privkey():
    return b'\x01' * 32

@pytest.fixture(scope='session')
def pubkey(privkey):
    return CT_priv_to_pubkey(privkey)

@pytest.fixture(scope='session')
def pkh(pubkey):
    return hash160(pubkey)

@pytest.fixture
def payload():
    return make_nft_payload('Test Glyph', FAKE_PNG, 'image/png', type_tag='user',
                                loc='ipfs://bafkreiexample',
                                attrs=dict(rarity='rare', level=3))

@pytest.fixture
def blob(payload):
    return encode(payload)

#
# Stand-ins for a requests.Session, so nothing goes online.
#
class FakeResponse:
    def __init__(self, status_code=200, text='', js=None):
        self.status_code = status_code
        self.text = text if js is None else json.dumps(js)
        self.content = self.text.encode()

    def json(self):
        return json.loads(self.text)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")

class FakeSession:
    def __init__(self, **routes):
        # routes: path -> FakeResponse
        self.routes = routes
        self.proxies = {}
        self.posted = []

    def _find(self, url):
        for path, resp in self.routes.items():
            if url.endswith(path):
                return resp
        return FakeResponse(404, 'not found')

    def get(self, url, **kws):
        return self._find(url)

    def post(self, url, data=None, **kws):
        self.posted.append((url, data, kws))
        return self._find(url)

class FakeChain(FakeSession):
    # Esplora server that keeps what it's sent.
    # - reject(body_hex) may return a rejection reason
    def __init__(self, utxos=(), confirm=True, reject=None):
        super().__init__()
        self.utxos = list(utxos)
        self.confirm = confirm
        self.reject = reject
        self.txs = {}

    def get(self, url, **kws):
        parts = url.split('/')
        if parts[-1] == 'utxo':
            return FakeResponse(js=self.utxos)
        if parts[-1] == 'hex':
            if parts[-2] not in self.txs:
                return FakeResponse(404, 'Transaction not found')
            return FakeResponse(200, self.txs[parts[-2]])
        if parts[-1] == 'status':
            return FakeResponse(js=dict(confirmed=bool(self.confirm and parts[-2] in self.txs)))
        return FakeResponse(404, 'not found')

    def post(self, url, data=None, **kws):
        self.posted.append((url, data, kws))
        reason = self.reject(data) if self.reject else None
        if reason:
            return FakeResponse(400, reason)

        txid = sha256d(bytes.fromhex(data))[::-1].hex()
        self.txs[txid] = data
        return FakeResponse(200, txid)

def fake_conn(ses):
    # NetConnection without __init__: no real session, no Tor probing
    from glyphmint.net import NetConnection

    conn = NetConnection.__new__(NetConnection)
    conn.ses = ses
    conn.server = 'https://explorer.example'
    conn.is_tor = False
    return conn

# EOF
