import unittest

from flask_jwt_extended import decode_token

from access_service.errors import InvalidInput, Misconfigured, Unauthorized
from tests.base import AccessServiceTestCase


class TestGuardCredentialVerifier(AccessServiceTestCase):
    def setUp(self):
        super().setUp()
        self.guards = self.core.guards
        self.seed_guard("G1", "Guard One", "270326")

    def test_pin_is_stored_hashed(self):
        guard = self.store.get("guards/G1")
        self.assertNotEqual(guard["credentialHash"], "270326")
        self.assertTrue(guard["credentialHash"].startswith("$2"))

    def test_authenticate_issues_guard_claim(self):
        claim = self.guards.authenticate("G1", "270326")

        decoded = decode_token(claim["accessToken"])
        self.assertEqual(decoded["sub"], "G1")
        self.assertEqual(decoded["role"], "guard")
        self.assertEqual(decoded["name"], "Guard One")
        self.assertEqual(claim["expiresIn"], 8 * 3600)
        self.assertEqual(decoded["exp"] - decoded["iat"], 8 * 3600)

    def test_wrong_pin(self):
        with self.assertRaises(Unauthorized):
            self.guards.authenticate("G1", "000000")

    def test_unknown_guard_looks_like_wrong_pin(self):
        with self.assertRaises(Unauthorized) as ctx:
            self.guards.authenticate("G9", "270326")
        self.assertEqual(ctx.exception.message, "Invalid guard id or pin")

    def test_missing_hash_is_misconfiguration(self):
        self.store.set("guards/G2", {"displayName": "No Pin"})

        with self.assertRaises(Misconfigured) as ctx:
            self.guards.authenticate("G2", "1234")
        self.assertEqual(ctx.exception.status_code, 500)

    def test_malformed_hash_is_misconfiguration(self):
        self.store.set("guards/G3", {"displayName": "Bad Hash", "credentialHash": "plaintext"})
        with self.assertRaises(Misconfigured):
            self.guards.authenticate("G3", "1234")

    def test_overlong_pin_is_a_wrong_pin(self):
        with self.assertRaises(Unauthorized) as ctx:
            self.guards.authenticate("G1", "x" * 100)
        self.assertEqual(ctx.exception.status_code, 401)

    def test_overlong_pin_sharing_the_hashed_prefix_is_rejected(self):
        self.seed_guard("G5", "Long Pin", "7" * 72)
        with self.assertRaises(Unauthorized):
            self.guards.authenticate("G5", "7" * 73)
        self.assertEqual(self.guards.authenticate("G5", "7" * 72)["guard"]["id"], "G5")

    def test_overlong_pin_is_rejected_on_registration(self):
        with self.assertRaises(InvalidInput):
            self.guards.register_guard("G6", "Long", "y" * 100)
        self.assertIsNone(self.store.get("guards/G6"))

    def test_missing_fields(self):
        with self.assertRaises(InvalidInput):
            self.guards.authenticate("G1", "")

    def test_short_pin_is_rejected_on_registration(self):
        with self.assertRaises(InvalidInput):
            self.guards.register_guard("G4", "Short", "12")


if __name__ == "__main__":
    unittest.main()
