#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Talking to the outside world: ledger queries, broadcast, content upload.
#
# - Requires 'requests[socks]' module
# - Will try to use Tor if you have it running locally already
# - Server must speak the Esplora REST protocol
#   <https://github.com/Blockstream/esplora/blob/master/API.md>
# - Content upload uses the IPFS HTTP API (/api/v0/add)
#
import os, json
from collections import namedtuple
from pprint import pformat
from .exceptions import RejectedByNetworkError
from .txn import parse_tx, serialize_tx, txid as calc_txid
from .utils import render_sats_value, B2A

# Change this to see traffic details
VERBOSE = False

DEFAULT_IPFS_API = 'http://127.0.0.1:5001'

# we check for any of these ports being open and assume it's Tor if found
LOCALHOST_PROXY_PORTS = [ 9150, 9050 ]

# Node rejection text -> category. First match wins, compared lower-case.
REJECTION_CATEGORIES = [
    ('stack-size', ( 'stack size must be exactly one', 'clean stack', 'cleanstack' )),
    ('reference', ( 'reference', 'inputref', 'singleton' )),
    ('equalverify', ( 'equalverify', )),
    ('signature', ( 'signature', 'checksig', 'non-canonical der', 'sighash' )),
    ('missing-inputs', ( 'missingorspent', 'missing inputs', 'missing-inputs' )),
    ('conflict', ( 'conflict', 'already in block chain', 'already known' )),
    ('fee', ( 'fee', 'insufficient priority' )),
    ('dust', ( 'dust', )),
]

def categorize_rejection(reason):
    # map node's rejection message to a short category; the reason itself
    # is always kept verbatim in the exception
    low = (reason or '').lower()
    for cat, needles in REJECTION_CATEGORIES:
        if any(n in low for n in needles):
            return cat
    return 'unknown'

class NetConnection:

    def __init__(self, server):
        import requests
        self.ses = requests.Session()
        self.is_tor = self.tor_upgrade()
        self.server = server
        assert server, 'need a server URL'
        assert not self.server.endswith('/')

    def tor_upgrade(self):
        # See if Tor is running, if so, apply socks-proxy details
        # - you can override with HTTP_PROXY / HTTPS_PROXY in environment
        import requests

        if ('HTTP_PROXY' in os.environ) or ('HTTPS_PROXY' in os.environ) or self.ses.proxies:
            return False

        try:
            # do we have support for socks?
            import socks
        except ImportError:
            return False

        for port in LOCALHOST_PROXY_PORTS:
            try:
                r = requests.get(f'http://127.0.0.1:{port}', timeout=2)
            except requests.RequestException:
                continue
            if ('This is a SOCKS Proxy, Not An HTTP Proxy' in r.text):
                # usual socks error message from Tord running locally.
                self.ses.proxies['https'] = f'socks5h://127.0.0.1:{port}'
                self.ses.proxies['http'] = f'socks5h://127.0.0.1:{port}'

                return True

        return False

    def _get(self, path, **kws):
        assert path[0] == '/'
        if VERBOSE:
            print(f">> GET {path}")
        r = self.ses.get(self.server + path, **kws)
        if VERBOSE:
            print(f"<< {r.status_code} ({len(r.content)} bytes)")
        r.raise_for_status()
        return r

    def get_json(self, path, **kws):
        # fetch a JSON response
        r = self._get(path, **kws)
        try:
            return r.json()
        except json.decoder.JSONDecodeError:
            raise ValueError("Bad json: " + r.text)

    def get_tx(self, txid):
        # ledger query: the full transaction, parsed
        tx = parse_tx(self._get(f'/api/tx/{txid}/hex').text.strip())
        if calc_txid(tx) != txid:
            raise ValueError(f"Server returned wrong transaction for {txid}")
        return tx

    def get_output_scripts(self, txid):
        # list of output scripts (bytes), in vout order
        return [o.script for o in self.get_tx(txid).outputs]

    def is_confirmed(self, txid):
        st = self.get_json(f'/api/tx/{txid}/status')
        return bool(st.get('confirmed', False))

    def broadcast(self, tx):
        # submit; returns txid or raises RejectedByNetworkError. Never retries.
        body = B2A(serialize_tx(tx))
        if VERBOSE:
            print(f">> POST /api/tx ({len(body)//2} bytes)")

        r = self.ses.post(self.server + '/api/tx', data=body)
        text = r.text.strip()

        if VERBOSE:
            print(f"<< {r.status_code} {text}")

        if r.status_code != 200:
            raise RejectedByNetworkError(text, categorize_rejection(text))

        expect = calc_txid(tx)
        if text.lower() != expect:
            raise RejectedByNetworkError(f"Server reported txid {text}, expected {expect}",
                                            'unknown')
        return expect


UTXO = namedtuple('UTXO', 'txid vout value height confirmed')

class UTXOList:

    def __init__(self, address, server=None, web=None):
        # must call self.fetch() after setup
        self.addr = address
        self.web = web or NetConnection(server)
        self.utxos = []

    def fetch(self):
        # load up the data from network
        ans = self.web.get_json(f'/api/address/{self.addr}/utxo')
        for u in ans:
            h = u['status'].get('block_height', -1)
            conf = u['status'].get('confirmed', False)

            self.utxos.append(UTXO(u['txid'], u['vout'], u['value'], h, conf))

        return len(self.utxos)

    # never, ever, add these values together!
    def confirmed_balance(self):
        return sum(u.value for u in self.utxos if u.confirmed)
    def unconfirmed_balance(self):
        return sum(u.value for u in self.utxos if not u.confirmed)

    def balance(self):
        # string value for humans, start with this
        return render_sats_value(self.confirmed_balance(), self.unconfirmed_balance())

    def pick(self, amount):
        # smallest-first selection of confirmed coins covering amount
        rv = []
        for u in sorted((u for u in self.utxos if u.confirmed), key=lambda u: u.value):
            rv.append(u)
            if sum(i.value for i in rv) >= amount:
                return rv

        raise ValueError(f"Not enough confirmed funds: need {amount:,} sats, have "
                            + render_sats_value(self.confirmed_balance(), 0))


def upload_content(data, mime, api_url=None, ses=None):
    # put bytes into IPFS; returns 'ipfs://CID'
    import requests
    ses = ses or requests.Session()
    url = (api_url or DEFAULT_IPFS_API).rstrip('/') + '/api/v0/add'

    if VERBOSE:
        print(f">> POST {url} ({len(data)} bytes, {mime})")

    r = ses.post(url, files={'file': ('content', data, mime)}, params={'cid-version': 1})
    r.raise_for_status()
    try:
        ans = r.json()
    except json.decoder.JSONDecodeError:
        raise ValueError("Bad json: " + r.text)

    if VERBOSE:
        print("<< " + pformat(ans))

    return 'ipfs://' + ans['Hash']

# EOF
