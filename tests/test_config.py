"""
Tests for florin_core.config - TOML configuration and environment overrides.

Covers:
  - Default values for all dataclass sections
  - _merge helper: updates, hyphenated keys, unknown-key warnings
  - TOML parsing and section merging
  - Environment variable overrides (precedence over TOML)
  - Validation of network, timeouts and mint parameters
  - MintSettings -> MintConfig conversion
"""

from __future__ import annotations

import hashlib
import os
import tempfile
import textwrap
import unittest
from unittest.mock import patch

from florin_core.config import (
    FlorinConfig,
    LedgerConfig,
    LoggingConfig,
    MintSettings,
    _merge,
    load_config,
)
from florin_core.store import MintConfig
from florin_core.verifier import VerificationConfig
from florin_zk.keys import KeyManager

AUTHORITY = KeyManager.from_seed(hashlib.sha256(b"florin-config-authority").digest())


def _write_toml(content: str) -> str:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
        f.write(textwrap.dedent(content))
        f.flush()
        return f.name


# ═══════════════════════════════════════════════════════════════════
#  Defaults
# ═══════════════════════════════════════════════════════════════════

class TestDefaults(unittest.TestCase):

    def test_ledger_defaults(self):
        c = LedgerConfig()
        self.assertEqual(c.endpoint, "http://127.0.0.1:8899")
        self.assertEqual(c.network, "localnet")
        self.assertEqual(c.timeout_seconds, 30.0)
        self.assertEqual(c.max_retries, 3)

    def test_mint_defaults(self):
        m = MintSettings()
        self.assertEqual(m.mint_address, "")
        self.assertEqual(m.decimals, 9)
        self.assertEqual(m.fee_basis_points, 0)

    def test_verification_defaults(self):
        v = VerificationConfig()
        self.assertEqual(v.max_proof_age_seconds, 3600)
        self.assertTrue(v.verify_crypto)
        self.assertTrue(v.check_version)

    def test_logging_defaults(self):
        log_cfg = LoggingConfig()
        self.assertEqual(log_cfg.level, "INFO")
        self.assertEqual(log_cfg.format, "human")
        self.assertIsNone(log_cfg.file)

    def test_florin_config_defaults(self):
        cfg = FlorinConfig()
        self.assertIsInstance(cfg.ledger, LedgerConfig)
        self.assertIsInstance(cfg.verification, VerificationConfig)
        cfg.validate()


# ═══════════════════════════════════════════════════════════════════
#  _merge helper
# ═══════════════════════════════════════════════════════════════════

class TestMerge(unittest.TestCase):

    def test_merge_updates_fields(self):
        c = LedgerConfig()
        _merge("ledger", c, {"network": "devnet", "max_retries": 1})
        self.assertEqual(c.network, "devnet")
        self.assertEqual(c.max_retries, 1)

    def test_merge_hyphenated_keys(self):
        c = LedgerConfig()
        _merge("ledger", c, {"timeout-seconds": 5})
        self.assertEqual(c.timeout_seconds, 5)

    def test_merge_warns_on_unknown_keys(self):
        c = LedgerConfig()
        with self.assertLogs("florin_config", level="WARNING") as cm:
            _merge("ledger", c, {"unknown_field": 42})
        self.assertFalse(hasattr(c, "unknown_field"))
        self.assertIn("[ledger] unknown_field", cm.output[0])


# ═══════════════════════════════════════════════════════════════════
#  TOML loading
# ═══════════════════════════════════════════════════════════════════

class TestLoadConfig(unittest.TestCase):

    def test_load_no_file(self):
        cfg = load_config(None)
        self.assertEqual(cfg.ledger.network, "localnet")

    def test_load_missing_file(self):
        with self.assertLogs("florin_config", level="WARNING"):
            cfg = load_config("/tmp/__nonexistent_florin__.toml")
        self.assertEqual(cfg.mint.decimals, 9)

    def test_load_toml_file(self):
        path = _write_toml(f"""\
            [ledger]
            endpoint = "http://10.0.0.5:8899"
            network = "devnet"
            timeout_seconds = 20

            [mint]
            mint_address = "FLRmint111"
            decimals = 6
            fee_basis_points = 50
            withheld_authority_pubkey = "{AUTHORITY.public_key.hex()}"

            [verification]
            max_proof_age_seconds = 600

            [logging]
            format = "json"
        """)
        try:
            cfg = load_config(path)
        finally:
            os.unlink(path)

        self.assertEqual(cfg.ledger.endpoint, "http://10.0.0.5:8899")
        self.assertEqual(cfg.ledger.network, "devnet")
        self.assertEqual(cfg.ledger.timeout_seconds, 20)
        self.assertEqual(cfg.mint.fee_basis_points, 50)
        self.assertEqual(cfg.verification.max_proof_age_seconds, 600)
        self.assertEqual(cfg.logging.format, "json")

        mint = cfg.mint.to_mint_config()
        self.assertIsInstance(mint, MintConfig)
        self.assertEqual(mint.decimals, 6)
        self.assertEqual(mint.withheld_authority_pubkey, AUTHORITY.public_key)
        self.assertIsNone(mint.auditor_pubkey)

    def test_invalid_network(self):
        path = _write_toml("""\
            [ledger]
            network = "moonnet"
        """)
        try:
            with self.assertRaises(ValueError):
                load_config(path)
        finally:
            os.unlink(path)

    def test_fee_mint_without_authority(self):
        path = _write_toml("""\
            [mint]
            mint_address = "FLRmint111"
            fee_basis_points = 50
        """)
        try:
            with self.assertRaises(ValueError):
                load_config(path)
        finally:
            os.unlink(path)


# ═══════════════════════════════════════════════════════════════════
#  Environment variable overrides
# ═══════════════════════════════════════════════════════════════════

class TestEnvOverrides(unittest.TestCase):

    @patch.dict(os.environ, {"FLORIN_LEDGER_ENDPOINT": "https://node.example:8899"}, clear=False)
    def test_env_endpoint(self):
        self.assertEqual(load_config(None).ledger.endpoint, "https://node.example:8899")

    @patch.dict(os.environ, {"FLORIN_NETWORK": "testnet"}, clear=False)
    def test_env_network(self):
        self.assertEqual(load_config(None).ledger.network, "testnet")

    @patch.dict(os.environ, {"FLORIN_TIMEOUT": "2.5"}, clear=False)
    def test_env_timeout(self):
        self.assertEqual(load_config(None).ledger.timeout_seconds, 2.5)

    @patch.dict(os.environ, {"FLORIN_LOG_LEVEL": "debug"}, clear=False)
    def test_env_log_level_uppercased(self):
        self.assertEqual(load_config(None).logging.level, "DEBUG")

    @patch.dict(os.environ, {"FLORIN_LOG_FMT": "json"}, clear=False)
    def test_env_log_format(self):
        self.assertEqual(load_config(None).logging.format, "json")

    @patch.dict(os.environ, {"FLORIN_MAX_PROOF_AGE": "120"}, clear=False)
    def test_env_max_proof_age(self):
        self.assertEqual(load_config(None).verification.max_proof_age_seconds, 120)

    @patch.dict(os.environ, {"FLORIN_TIMEOUT": "0"}, clear=False)
    def test_env_zero_timeout_rejected(self):
        with self.assertRaises(ValueError):
            load_config(None)

    @patch.dict(os.environ, {"FLORIN_NETWORK": "mainnet"}, clear=False)
    def test_env_wins_over_toml(self):
        path = _write_toml("""\
            [ledger]
            network = "devnet"
        """)
        try:
            cfg = load_config(path)
        finally:
            os.unlink(path)
        self.assertEqual(cfg.ledger.network, "mainnet")


if __name__ == "__main__":
    unittest.main()
