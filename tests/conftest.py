"""
Pytest configuration and shared fixtures for provenance tracking tests.

FakeLedger serves an in-memory pair of registries over JSON-RPC through
`responses`, encoding return data with eth-abi the same way a node would.
"""

import json
import threading

import pytest
import responses
from eth_abi import decode, encode

from scripts.lib.contracts import (
    ASSET_TYPES,
    ATTRIBUTE_TYPES,
    COMPOSITION_TUPLE,
    DEFAULT_ASSETS_ADDRESS,
    DEFAULT_PARTICIPANTS_ADDRESS,
    GET_ASSET,
    GET_ATTRIBUTE,
    GET_ATTRIBUTE_NAMES,
    GET_COMPOSITION,
    GET_PARTICIPANTS,
    PARTICIPANT_TUPLE,
    TRANSFER_EVENT_TOPIC,
    TRANSFER_EVENT_TYPES,
    selector,
)

ZERO_ADDRESS = "0x" + "00" * 20
PRODUCER_ADDRESS = "0x" + "aa" * 20
FACTORY_ADDRESS = "0x" + "bb" * 20
RETAILER_ADDRESS = "0x" + "cc" * 20


class FakeLedger:
    """In-memory ledger answering the JSON-RPC methods the readers use."""

    def __init__(self):
        self.participants = []
        self.assets = {}
        self.attributes = {}
        self.composition = {}
        self.logs = []
        self.receipts = {}
        self.blocks = {}
        self.failing_assets = set()
        self.fail_participants = False
        self.fail_logs = False
        self.raw_bodies = {}
        self.calls = []
        self._lock = threading.Lock()

    def add_participant(self, address, name, gps, role, active=True):
        self.participants.append((address, name, gps, role, active))

    def add_asset(self, asset_id, name, creator, quantity, description="", timestamp=1700000000):
        self.assets[asset_id] = (name, creator, description, quantity, timestamp)
        self.attributes.setdefault(asset_id, [])
        self.composition.setdefault(asset_id, [])

    def add_attribute(self, asset_id, name, value, timestamp=1700000000):
        self.attributes.setdefault(asset_id, []).append((name, value, timestamp))

    def add_composition(self, child_id, parent_id, quantity_used, timestamp=1700000000):
        self.composition.setdefault(child_id, []).append(
            (child_id, parent_id, quantity_used, timestamp)
        )

    def add_transfer(
        self,
        asset_id,
        sender,
        recipient,
        quantity,
        block_number,
        tx_index=0,
        log_index=0,
        tx_hash=None,
        gas_used=52000,
        gas_price=1000000000,
        timestamp=None,
    ):
        """Record a transfer log together with its receipt and block."""
        tx_hash = tx_hash or "0x%064x" % (block_number * 1000 + tx_index)
        data = encode(TRANSFER_EVENT_TYPES, [asset_id, sender, recipient, quantity])
        self.logs.append(
            {
                "address": DEFAULT_ASSETS_ADDRESS.lower(),
                "topics": [TRANSFER_EVENT_TOPIC],
                "data": "0x" + data.hex(),
                "blockNumber": hex(block_number),
                "transactionHash": tx_hash,
                "transactionIndex": hex(tx_index),
                "logIndex": hex(log_index),
                "removed": False,
            }
        )
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "gasUsed": hex(gas_used),
            "effectiveGasPrice": hex(gas_price),
        }
        self.blocks[block_number] = {
            "number": hex(block_number),
            "timestamp": hex(timestamp if timestamp is not None else 1700000000 + block_number),
        }
        return tx_hash

    def methods_called(self, method):
        return [call for call in self.calls if call == method]

    def _eth_call(self, params):
        to = params[0]["to"].lower()
        data = bytes.fromhex(params[0]["data"][2:])
        sel, args = data[:4], data[4:]

        if to == DEFAULT_PARTICIPANTS_ADDRESS.lower() and sel == selector(GET_PARTICIPANTS):
            if self.fail_participants:
                raise LookupError("participant registry unavailable")
            return encode([PARTICIPANT_TUPLE + "[]"], [self.participants])

        if sel == selector(GET_ASSET):
            (asset_id,) = decode(["uint256"], args)
            if asset_id in self.failing_assets:
                raise LookupError(f"asset {asset_id} unavailable")
            if asset_id not in self.assets:
                return encode(ASSET_TYPES, [0, "", ZERO_ADDRESS, "", 0, 0])
            name, creator, description, quantity, timestamp = self.assets[asset_id]
            return encode(
                ASSET_TYPES, [asset_id, name, creator, description, quantity, timestamp]
            )

        if sel == selector(GET_ATTRIBUTE_NAMES):
            (asset_id,) = decode(["uint256"], args)
            return encode(["string[]"], [[attr[0] for attr in self.attributes.get(asset_id, [])]])

        if sel == selector(GET_ATTRIBUTE):
            asset_id, name = decode(["uint256", "string"], args)
            for attr_name, value, timestamp in self.attributes.get(asset_id, []):
                if attr_name == name:
                    return encode(ATTRIBUTE_TYPES, [attr_name, value, timestamp])
            raise LookupError(f"attribute {name} not set")

        if sel == selector(GET_COMPOSITION):
            (asset_id,) = decode(["uint256"], args)
            return encode([COMPOSITION_TUPLE + "[]"], [self.composition.get(asset_id, [])])

        raise LookupError("execution reverted")

    def _dispatch(self, method, params):
        if method == "eth_call":
            return "0x" + self._eth_call(params).hex()
        if method == "eth_getLogs":
            if self.fail_logs:
                raise LookupError("log query failed")
            return self.logs
        if method == "eth_getTransactionReceipt":
            return self.receipts.get(params[0])
        if method == "eth_getBlockByNumber":
            return self.blocks.get(int(params[0], 16))
        raise LookupError(f"method {method} not supported")

    def handle(self, request):
        """responses callback: answer one JSON-RPC request."""
        payload = json.loads(request.body)
        with self._lock:
            self.calls.append(payload["method"])
        if payload["method"] in self.raw_bodies:
            return (200, {}, json.dumps(self.raw_bodies[payload["method"]]))
        try:
            result = self._dispatch(payload["method"], payload["params"])
            body = {"jsonrpc": "2.0", "id": payload["id"], "result": result}
        except LookupError as e:
            body = {"jsonrpc": "2.0", "id": payload["id"], "error": {"code": -32000, "message": str(e)}}
        return (200, {}, json.dumps(body))


@pytest.fixture
def rpc_url():
    """Mock ledger JSON-RPC endpoint."""
    return "http://ledger.test:8545"


@pytest.fixture
def fake_ledger(rpc_url):
    """FakeLedger wired to the mock endpoint for the duration of a test."""
    ledger = FakeLedger()
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add_callback(
            responses.POST,
            rpc_url,
            callback=ledger.handle,
            content_type="application/json",
        )
        yield ledger


@pytest.fixture
def populated_ledger(fake_ledger):
    """
    Ledger with a producer, a factory and a retailer, a raw batch and a
    processed batch built from it.
    """
    fake_ledger.add_participant(PRODUCER_ADDRESS, "Olivar del Sur", "37.88,-4.77", "productor")
    fake_ledger.add_participant(FACTORY_ADDRESS, "Almazara Central", "37.39,-5.98", "fabrica")
    fake_ledger.add_participant(RETAILER_ADDRESS, "Tienda Gourmet", "40.41,-3.70", "minorista")

    fake_ledger.add_asset(1, "Picual olives", PRODUCER_ADDRESS, 10000, "Early harvest")
    fake_ledger.add_attribute(1, "variety", "Picual")
    fake_ledger.add_attribute(1, "harvest", "2024-10")

    fake_ledger.add_asset(2, "Extra virgin oil", FACTORY_ADDRESS, 2000)
    fake_ledger.add_attribute(2, "acidity", "0.2")
    fake_ledger.add_composition(2, 1, 8000)
    return fake_ledger
