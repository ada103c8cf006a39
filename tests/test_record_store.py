import unittest
from unittest import mock

from sqlalchemy.exc import OperationalError

from access_service.errors import StoreUnavailable
from access_service.services.record_store import RecordStore, split_path
from tests.base import AccessServiceTestCase


class TestSplitPath(unittest.TestCase):
    def test_nested_path(self):
        self.assertEqual(split_path("attendance/sala-101/est-001"), ("attendance/sala-101", "est-001"))

    def test_extra_slashes_are_ignored(self):
        self.assertEqual(split_path("/accessTokens//est-001/"), ("accessTokens", "est-001"))

    def test_path_needs_collection_and_key(self):
        with self.assertRaises(ValueError):
            split_path("accessTokens")


class TestRecordStore(AccessServiceTestCase):
    def test_get_missing_returns_none(self):
        self.assertIsNone(self.store.get("identities/nobody"))

    def test_set_then_get(self):
        self.store.set("identities/est-001", {"displayName": "Ana", "role": "student"})
        self.assertEqual(self.store.get("identities/est-001"), {"displayName": "Ana", "role": "student"})

    def test_update_merges_fields(self):
        self.store.set("guards/G1", {"displayName": "Guard", "credentialHash": "x"})
        merged = self.store.update("guards/G1", {"pinUpdatedAt": 5})
        self.assertEqual(merged, {"displayName": "Guard", "credentialHash": "x", "pinUpdatedAt": 5})
        self.assertEqual(self.store.get("guards/G1")["pinUpdatedAt"], 5)

    def test_update_creates_absent_record(self):
        self.store.update("identities/est-002", {"displayName": "Bea"})
        self.assertEqual(self.store.get("identities/est-002"), {"displayName": "Bea"})

    def test_push_generates_distinct_keys(self):
        first = self.store.push("accessHistory", {"timestamp": 1})
        second = self.store.push("accessHistory", {"timestamp": 2})
        self.assertNotEqual(first, second)
        self.assertEqual(self.store.get(f"accessHistory/{first}"), {"timestamp": 1})

    def test_query_equal_to_filters_on_child(self):
        self.store.set("guardShifts/a", {"guardId": "G1", "startedAt": 1})
        self.store.set("guardShifts/b", {"guardId": "G2", "startedAt": 2})
        self.store.set("guardShifts/c", {"guardId": "G1", "startedAt": 3})
        keys = [key for key, _ in self.store.query("guardShifts", equal_to=("guardId", "G1"))]
        self.assertEqual(keys, ["a", "c"])

    def test_query_ordering_breaks_ties_by_key(self):
        self.store.set("accessHistory/a", {"timestamp": 10})
        self.store.set("accessHistory/b", {"timestamp": 30})
        self.store.set("accessHistory/c", {"timestamp": 10})
        rows = self.store.query("accessHistory", order_by="timestamp", descending=True, limit=2)
        self.assertEqual([key for key, _ in rows], ["b", "c"])

    def test_query_only_returns_direct_children(self):
        self.store.set("attendance/x", {"timestamp": 1})
        self.store.set("attendance/sala/y", {"timestamp": 2})
        self.assertEqual([key for key, _ in self.store.children("attendance")], ["x"])

    def test_transaction_abort_returns_current_value(self):
        self.store.set("accessTokens/est-001", {"value": "T1", "used": True})
        result = self.store.transaction("accessTokens/est-001", lambda current: None)
        self.assertFalse(result.committed)
        self.assertEqual(result.snapshot, {"value": "T1", "used": True})

    def test_transaction_on_absent_record_sees_none(self):
        seen = []

        def fn(current):
            seen.append(current)
            return {"count": 1}

        result = self.store.transaction("counters/c1", fn)
        self.assertTrue(result.committed)
        self.assertEqual(seen, [None])
        self.assertEqual(self.store.get("counters/c1"), {"count": 1})

    def test_transaction_function_gets_a_copy(self):
        self.store.set("counters/c1", {"nested": {"n": 1}})

        def fn(current):
            current["nested"]["n"] = 99
            return None

        result = self.store.transaction("counters/c1", fn)
        self.assertEqual(result.snapshot, {"nested": {"n": 1}})

    def test_concurrent_transactions_do_not_lose_updates(self):
        self.store.set("counters/c1", {"count": 0})

        def increment(_):
            def fn(current):
                current["count"] += 1
                return current
            return self.store.transaction("counters/c1", fn).committed

        results = self.run_concurrently(self.in_app_context(increment), 8)

        self.assertTrue(all(results))
        self.assertEqual(self.store.get("counters/c1"), {"count": 8})

    def test_concurrent_creates_settle_on_one_insert(self):
        def create(i):
            return self.store.transaction(
                "locks/L1", lambda current: {"owner": i} if current is None else None
            ).committed

        results = self.run_concurrently(self.in_app_context(create), 6)

        self.assertEqual(results.count(True), 1)

    def test_exhausted_retries_raise_store_unavailable(self):
        store = RecordStore(self.store._db, max_retries=2)
        store.set("counters/c1", {"count": 0})

        def always_stale(current):
            # Bump the version underneath every attempt
            self.store.set("counters/c1", {"count": current["count"] + 1})
            return {"count": -1}

        with self.assertRaises(StoreUnavailable):
            store.transaction("counters/c1", always_stale)

    def test_driver_errors_surface_as_store_unavailable(self):
        with mock.patch.object(
            self.store._db.session, "execute",
            side_effect=OperationalError("SELECT", {}, Exception("down")),
        ):
            with self.assertRaises(StoreUnavailable):
                self.store.get("identities/est-001")


if __name__ == "__main__":
    unittest.main()
