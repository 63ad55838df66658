"""
Opt-in resubmission for ledger adapters.

Adapters never retry; a caller that wants to resubmit the same bundle after
a transport failure wraps the call here.  Only ``SubmissionError``s flagged
``retryable`` are retried, with exponential backoff (backoff, 2x, 4x ...).
Resubmitting is safe because ledgers reject a ``proof_id`` they already
processed.
"""

from __future__ import annotations

import asyncio
import logging

from florin_wire.bundle import ProofBundle

from florin_core.errors import SubmissionError
from florin_core.ledger import Confirmation, LedgerAdapter

logger = logging.getLogger("florin_retry")


async def submit_with_retry(
    adapter: LedgerAdapter,
    account_ref: str,
    bundle: ProofBundle,
    max_retries: int = 3,
    backoff: float = 0.5,
) -> Confirmation:
    """
    Submit *bundle*, retrying retryable failures up to *max_retries* times.

    The last ``SubmissionError`` is re-raised once retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return await adapter.submit(account_ref, bundle)
        except SubmissionError as exc:
            if not exc.retryable or attempt >= max_retries:
                raise
            delay = backoff * (2 ** attempt)
            attempt += 1
            logger.warning(
                f"Submission failed ({exc}); retry {attempt}/{max_retries} in {delay:.2f}s",
                extra={"account": account_ref, "proof_id": bundle.proof_id},
            )
            await asyncio.sleep(delay)
