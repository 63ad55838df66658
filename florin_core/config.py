"""
TOML-based configuration for the Florin ledger-facing context.

Loads settings from a TOML file and/or environment variables; environment
variables win.  The resulting ``FlorinConfig`` is passed explicitly to the
adapters and services that need it - nothing here is process-wide state.

Example ``florin.toml``:

    [ledger]
    endpoint = "http://127.0.0.1:8899"
    network = "devnet"
    timeout_seconds = 20

    [mint]
    mint_address = "FLRmint111"
    decimals = 6
    fee_basis_points = 50
    withheld_authority_pubkey = "02ab..."

    [verification]
    max_proof_age_seconds = 600

Usage:
    from florin_core.config import load_config
    cfg = load_config("florin.toml")
    adapter = RpcLedgerAdapter(cfg.ledger)
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]

from florin_core.store import MintConfig
from florin_core.verifier import VerificationConfig

logger = logging.getLogger("florin_config")

NETWORKS = ("localnet", "devnet", "testnet", "mainnet")


@dataclass
class LedgerConfig:
    """Where and how bundles are submitted."""
    endpoint: str = "http://127.0.0.1:8899"
    network: str = "localnet"
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_backoff_seconds: float = 0.5


@dataclass
class MintSettings:
    """
    Confidential mint parameters.  Public keys are hex-encoded compressed
    points; empty means "not set".
    """
    mint_address: str = ""
    decimals: int = 9
    auditor_pubkey: str = ""
    fee_basis_points: int = 0
    withheld_authority_pubkey: str = ""

    def to_mint_config(self) -> MintConfig:
        return MintConfig(
            mint_address=self.mint_address,
            decimals=self.decimals,
            auditor_pubkey=bytes.fromhex(self.auditor_pubkey) if self.auditor_pubkey else None,
            fee_basis_points=self.fee_basis_points,
            withheld_authority_pubkey=(
                bytes.fromhex(self.withheld_authority_pubkey)
                if self.withheld_authority_pubkey else None
            ),
        )


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: Optional[str] = None


@dataclass
class FlorinConfig:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    mint: MintSettings = field(default_factory=MintSettings)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        """Raise ValueError on settings that cannot work."""
        if self.ledger.network not in NETWORKS:
            raise ValueError(f"ledger.network must be one of {NETWORKS}, got {self.ledger.network!r}")
        if self.ledger.timeout_seconds <= 0:
            raise ValueError("ledger.timeout_seconds must be positive")
        if self.ledger.max_retries < 0:
            raise ValueError("ledger.max_retries must be >= 0")
        if self.verification.max_proof_age_seconds <= 0:
            raise ValueError("verification.max_proof_age_seconds must be positive")
        if self.mint.mint_address:
            self.mint.to_mint_config()


def _merge(section: str, dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw TOML table into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)
        else:
            logger.warning(f"Ignoring unknown config key [{section}] {key}")


def load_config(path: Optional[str] = None) -> FlorinConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        FLORIN_LEDGER_ENDPOINT -> ledger.endpoint
        FLORIN_NETWORK         -> ledger.network
        FLORIN_TIMEOUT         -> ledger.timeout_seconds
        FLORIN_LOG_LEVEL       -> logging.level
        FLORIN_LOG_FMT         -> logging.format
        FLORIN_MAX_PROOF_AGE   -> verification.max_proof_age_seconds
    """
    cfg = FlorinConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("ledger", cfg.ledger),
                ("mint", cfg.mint),
                ("verification", cfg.verification),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_name, section_dc, data[section_name])
        else:
            logger.warning(f"Config file {p} not found, using defaults")

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("FLORIN_LEDGER_ENDPOINT"):
        cfg.ledger.endpoint = v
    if v := os.environ.get("FLORIN_NETWORK"):
        cfg.ledger.network = v
    if v := os.environ.get("FLORIN_TIMEOUT"):
        cfg.ledger.timeout_seconds = float(v)
    if v := os.environ.get("FLORIN_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("FLORIN_LOG_FMT"):
        cfg.logging.format = v
    if v := os.environ.get("FLORIN_MAX_PROOF_AGE"):
        cfg.verification.max_proof_age_seconds = int(v)

    cfg.validate()
    return cfg
