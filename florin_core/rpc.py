"""
JSON-RPC ledger adapter over aiohttp.

Each bundle is posted as one ``submitProofBundle`` call:

    {"jsonrpc": "2.0", "method": "submitProofBundle", "id": <n>,
     "params": {"account": ..., "network": ..., "bundle": {...}}}

and the node answers with ``{"result": {"proof_id", "sequence", "signature",
"destination"?}}`` or ``{"error": {"code", "message", "data": {"retryable"}}}``.

Transport failures, timeouts and 5xx responses raise a retryable
``SubmissionError``; node-side rejections are retryable only when the node
says so.  The adapter itself never retries.

Usage:
    async with RpcLedgerAdapter(cfg.ledger) as adapter:
        confirmation = await adapter.submit("alice", bundle)
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Optional

import aiohttp

from florin_wire.bundle import ProofBundle

from florin_core.config import LedgerConfig
from florin_core.errors import SubmissionError
from florin_core.ledger import Confirmation, LedgerAdapter

logger = logging.getLogger("florin_rpc")

SUBMIT_METHOD = "submitProofBundle"


class RpcLedgerAdapter(LedgerAdapter):
    """Submit bundles to a remote node's JSON-RPC endpoint."""

    def __init__(self, config: LedgerConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def _call(self, method: str, params: dict[str, Any]) -> Any:
        request_id = next(self._ids)
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": request_id}
        session = self._get_session()
        try:
            async with session.post(self.config.endpoint, json=payload) as resp:
                if resp.status >= 500:
                    raise SubmissionError(
                        f"{self.config.endpoint} answered HTTP {resp.status}",
                        retryable=True, code=f"http_{resp.status}",
                    )
                if resp.status >= 400:
                    raise SubmissionError(
                        f"{self.config.endpoint} answered HTTP {resp.status}",
                        retryable=False, code=f"http_{resp.status}",
                    )
                try:
                    body = await resp.json(content_type=None)
                except ValueError as exc:
                    raise SubmissionError(
                        f"Malformed response from {self.config.endpoint}: {exc}",
                        retryable=True, code="bad_response",
                    ) from exc
        except asyncio.TimeoutError as exc:
            raise SubmissionError(
                f"{method} timed out after {self.config.timeout_seconds}s",
                retryable=True, code="timeout",
            ) from exc
        except aiohttp.ClientError as exc:
            raise SubmissionError(
                f"{method} to {self.config.endpoint} failed: {exc}",
                retryable=True, code="transport",
            ) from exc

        if not isinstance(body, dict):
            raise SubmissionError("JSON-RPC response is not an object",
                                  retryable=True, code="bad_response")
        error = body.get("error")
        if error:
            if not isinstance(error, dict):
                raise SubmissionError(f"Malformed JSON-RPC error: {error!r}",
                                      retryable=False, code="bad_response")
            data = error.get("data")
            if not isinstance(data, dict):
                data = {}
            raise SubmissionError(
                str(error.get("message", "unknown error")),
                retryable=bool(data.get("retryable", False)),
                code=str(data.get("reason") or error.get("code")),
            )
        if "result" not in body:
            raise SubmissionError("JSON-RPC response has neither result nor error",
                                  retryable=True, code="bad_response")
        return body["result"]

    async def submit(self, account_ref: str, bundle: ProofBundle) -> Confirmation:
        logger.debug(f"Submitting {bundle.proof_type.value} bundle to {self.config.endpoint}",
                     extra={"account": account_ref, "proof_id": bundle.proof_id})
        result = await self._call(SUBMIT_METHOD, {
            "account": account_ref,
            "network": self.config.network,
            "bundle": bundle.to_dict(),
        })
        try:
            proof_id = result["proof_id"]
            sequence = int(result["sequence"])
            signature = str(result["signature"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SubmissionError(f"Incomplete confirmation: {exc}",
                                  retryable=False, code="bad_response") from exc
        if proof_id != bundle.proof_id:
            raise SubmissionError(
                f"Node confirmed {proof_id}, expected {bundle.proof_id}",
                retryable=False, code="proof_id_mismatch",
            )
        logger.info(f"Ledger confirmed {bundle.proof_type.value} #{sequence}",
                    extra={"account": account_ref, "proof_id": proof_id})
        return Confirmation(
            proof_id=proof_id,
            account=account_ref,
            sequence=sequence,
            signature=signature,
            bundle=bundle,
            destination=result.get("destination", bundle.metadata.destination_address),
        )
