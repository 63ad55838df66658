"""
Tests for florin_core.rpc - JSON-RPC ledger adapter over aiohttp.

A local aiohttp application plays the node; each test sets how it answers.

Covers:
  - Request shape and successful confirmation
  - Node-side JSON-RPC errors, retryable and not, and malformed error members
  - HTTP 4xx / 5xx, malformed bodies, incomplete results
  - proof_id mismatch
  - Connection refused and request timeout
"""

from __future__ import annotations

import asyncio
import hashlib

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from florin_core.config import LedgerConfig
from florin_core.errors import SubmissionError
from florin_core.rpc import SUBMIT_METHOD, RpcLedgerAdapter
from florin_zk.generator import ProofGenerator
from florin_zk.keys import KeyManager

KM = KeyManager.from_seed(hashlib.sha256(b"florin-rpc").digest())


def _bundle():
    return ProofGenerator().pubkey_validity(KM.keypair, "alice")


class _FakeNode:
    """Records requests and answers with whatever ``respond`` returns."""

    def __init__(self, respond):
        self.respond = respond
        self.requests: list[dict] = []

    async def handle(self, request: web.Request) -> web.StreamResponse:
        body = await request.json()
        self.requests.append(body)
        return await self.respond(body)


def _confirm(body, **overrides):
    result = {
        "proof_id": body["params"]["bundle"]["proof_id"],
        "sequence": 7,
        "signature": "ab" * 32,
    }
    result.update(overrides)
    return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": result})


def _make_client(respond):
    node = _FakeNode(respond)
    app = web.Application()
    app.router.add_post("/", node.handle)
    return TestClient(TestServer(app)), node


def _adapter(client, **overrides) -> RpcLedgerAdapter:
    cfg = LedgerConfig(endpoint=str(client.make_url("/")), network="devnet", **overrides)
    return RpcLedgerAdapter(cfg)


# ═══════════════════════════════════════════════════════════════════
#  Success
# ═══════════════════════════════════════════════════════════════════

class TestSubmit:

    @pytest.mark.asyncio
    async def test_confirmation(self):
        async def respond(body):
            return _confirm(body)

        client, node = _make_client(respond)
        bundle = _bundle()
        async with client:
            async with _adapter(client) as adapter:
                confirmation = await adapter.submit("alice", bundle)

        assert confirmation.proof_id == bundle.proof_id
        assert confirmation.sequence == 7
        assert confirmation.account == "alice"
        assert confirmation.bundle is bundle
        assert confirmation.snapshot is None

        request = node.requests[0]
        assert request["jsonrpc"] == "2.0"
        assert request["method"] == SUBMIT_METHOD
        assert request["params"]["account"] == "alice"
        assert request["params"]["network"] == "devnet"
        assert request["params"]["bundle"] == bundle.to_dict()

    @pytest.mark.asyncio
    async def test_request_ids_increase(self):
        async def respond(body):
            return _confirm(body)

        client, node = _make_client(respond)
        async with client:
            async with _adapter(client) as adapter:
                await adapter.submit("alice", _bundle())
                await adapter.submit("alice", _bundle())
        assert [r["id"] for r in node.requests] == [1, 2]

    @pytest.mark.asyncio
    async def test_destination_from_result(self):
        async def respond(body):
            return _confirm(body, destination="bob")

        client, _ = _make_client(respond)
        async with client:
            async with _adapter(client) as adapter:
                confirmation = await adapter.submit("alice", _bundle())
        assert confirmation.destination == "bob"


# ═══════════════════════════════════════════════════════════════════
#  Failures
# ═══════════════════════════════════════════════════════════════════

async def _submit_error(respond, **overrides) -> SubmissionError:
    client, _ = _make_client(respond)
    async with client:
        async with _adapter(client, **overrides) as adapter:
            with pytest.raises(SubmissionError) as exc_info:
                await adapter.submit("alice", _bundle())
    return exc_info.value


class TestErrors:

    @pytest.mark.asyncio
    async def test_rpc_rejection(self):
        async def respond(body):
            return web.json_response({
                "jsonrpc": "2.0", "id": body["id"],
                "error": {"code": -32002, "message": "proof rejected",
                          "data": {"reason": "verification_failed"}},
            })

        err = await _submit_error(respond)
        assert err.code == "verification_failed"
        assert not err.retryable
        assert "proof rejected" in str(err)

    @pytest.mark.asyncio
    async def test_rpc_retryable_error(self):
        async def respond(body):
            return web.json_response({
                "jsonrpc": "2.0", "id": body["id"],
                "error": {"code": -32005, "message": "node busy", "data": {"retryable": True}},
            })

        err = await _submit_error(respond)
        assert err.retryable
        assert err.code == "-32005"

    @pytest.mark.asyncio
    async def test_error_not_an_object(self):
        async def respond(body):
            return web.json_response({"jsonrpc": "2.0", "id": body["id"], "error": "node exploded"})

        err = await _submit_error(respond)
        assert err.code == "bad_response"
        assert not err.retryable
        assert "node exploded" in str(err)

    @pytest.mark.asyncio
    async def test_error_data_not_an_object(self):
        async def respond(body):
            return web.json_response({
                "jsonrpc": "2.0", "id": body["id"],
                "error": {"code": -32000, "message": "rejected", "data": ["opaque"]},
            })

        err = await _submit_error(respond)
        assert err.code == "-32000"
        assert not err.retryable

    @pytest.mark.asyncio
    async def test_http_503(self):
        async def respond(body):
            return web.Response(status=503, text="maintenance")

        err = await _submit_error(respond)
        assert err.code == "http_503"
        assert err.retryable

    @pytest.mark.asyncio
    async def test_http_404(self):
        async def respond(body):
            return web.Response(status=404)

        err = await _submit_error(respond)
        assert err.code == "http_404"
        assert not err.retryable

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        async def respond(body):
            return web.Response(text="<html>oops</html>", content_type="text/html")

        err = await _submit_error(respond)
        assert err.code == "bad_response"
        assert err.retryable

    @pytest.mark.asyncio
    async def test_missing_result(self):
        async def respond(body):
            return web.json_response({"jsonrpc": "2.0", "id": body["id"]})

        err = await _submit_error(respond)
        assert err.code == "bad_response"

    @pytest.mark.asyncio
    async def test_incomplete_result(self):
        async def respond(body):
            return web.json_response({"jsonrpc": "2.0", "id": body["id"],
                                      "result": {"proof_id": "x"}})

        err = await _submit_error(respond)
        assert err.code == "bad_response"
        assert not err.retryable

    @pytest.mark.asyncio
    async def test_proof_id_mismatch(self):
        async def respond(body):
            return _confirm(body, proof_id="00000000-0000-4000-8000-000000000000")

        err = await _submit_error(respond)
        assert err.code == "proof_id_mismatch"
        assert not err.retryable

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def respond(body):
            await asyncio.sleep(0.5)
            return _confirm(body)

        err = await _submit_error(respond, timeout_seconds=0.1)
        assert err.code == "timeout"
        assert err.retryable

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        adapter = RpcLedgerAdapter(LedgerConfig(endpoint="http://127.0.0.1:1", timeout_seconds=2))
        try:
            with pytest.raises(SubmissionError) as exc_info:
                await adapter.submit("alice", _bundle())
        finally:
            await adapter.close()
        assert exc_info.value.code == "transport"
        assert exc_info.value.retryable
