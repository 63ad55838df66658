"""
Tests for florin_wire.versioning - DTO version handling.

Covers:
  - Semantic version parsing and pre-release ordering
  - Compatibility window
  - needs_upgrade / version_relationship / upgrade on current bundles
"""

import dataclasses
import hashlib
import unittest

from florin_wire.errors import SchemaViolation
from florin_wire.versioning import (
    CURRENT_DTO_VERSION,
    MIN_SUPPORTED_DTO_VERSION,
    check_version_compatibility,
    compare_versions,
    needs_upgrade,
    parse_version,
    upgrade_bundle_to_current_version,
    version_relationship,
)
from florin_zk.generator import ProofGenerator
from florin_zk.keys import KeyManager


class TestParse(unittest.TestCase):

    def test_plain(self):
        self.assertEqual(parse_version("1.2.3"), (1, 2, 3, ""))

    def test_prerelease_and_build(self):
        self.assertEqual(parse_version("1.0.0-rc.1+abc"), (1, 0, 0, "rc.1"))

    def test_invalid(self):
        for bad in ("1.0", "01.0.0", "v1.0.0", "", "1.0.0-"):
            with self.assertRaises(SchemaViolation, msg=bad):
                parse_version(bad)

    def test_non_string(self):
        with self.assertRaises(SchemaViolation):
            parse_version(1)


class TestCompare(unittest.TestCase):

    def test_ordering(self):
        self.assertEqual(compare_versions("1.0.0", "1.0.0"), 0)
        self.assertEqual(compare_versions("1.0.1", "1.0.0"), 1)
        self.assertEqual(compare_versions("1.0.0", "1.1.0"), -1)
        self.assertEqual(compare_versions("2.0.0", "10.0.0"), -1)

    def test_prerelease_sorts_before_release(self):
        self.assertEqual(compare_versions("1.0.0-rc.1", "1.0.0"), -1)

    def test_compatibility_window(self):
        self.assertTrue(check_version_compatibility(CURRENT_DTO_VERSION))
        self.assertTrue(check_version_compatibility(MIN_SUPPORTED_DTO_VERSION))
        self.assertFalse(check_version_compatibility("99.0.0"))
        self.assertFalse(check_version_compatibility("0.0.1"))


class TestUpgrade(unittest.TestCase):

    def setUp(self):
        km = KeyManager.from_seed(hashlib.sha256(b"florin-versioning").digest())
        self.bundle = ProofGenerator().pubkey_validity(km.keypair, "alice")

    def test_current_bundle(self):
        self.assertFalse(needs_upgrade(self.bundle))
        self.assertEqual(version_relationship(self.bundle), 0)
        upgraded, changed = upgrade_bundle_to_current_version(self.bundle)
        self.assertFalse(changed)
        self.assertIs(upgraded, self.bundle)

    def test_older_bundle_is_restamped(self):
        old = dataclasses.replace(self.bundle, version="1.0.0-rc.1")
        self.assertTrue(needs_upgrade(old))
        self.assertEqual(version_relationship(old), -1)
        upgraded, changed = upgrade_bundle_to_current_version(old)
        self.assertTrue(changed)
        self.assertEqual(upgraded.version, CURRENT_DTO_VERSION)
        self.assertEqual(old.version, "1.0.0-rc.1")
        self.assertEqual(upgraded.proof_id, old.proof_id)


if __name__ == "__main__":
    unittest.main()
