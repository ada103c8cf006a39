import unittest
from unittest import mock

from access_service.errors import Conflict, Forbidden, NotFound, ShiftConflict, StoreUnavailable
from tests.base import AccessServiceTestCase


class TestShiftManager(AccessServiceTestCase):
    def setUp(self):
        super().setUp()
        self.shifts = self.core.shifts

    def test_start_creates_active_shift(self):
        shift = self.shifts.start_shift("G1", notes="Front gate")

        self.assertTrue(shift["active"])
        self.assertIsNone(shift["endedAt"])
        self.assertEqual(shift["notes"], "Front gate")
        self.assertEqual(self.store.get(f"guardShifts/{shift['id']}")["guardId"], "G1")

    def test_second_start_conflicts_with_first(self):
        first = self.shifts.start_shift("G1")

        with self.assertRaises(ShiftConflict) as ctx:
            self.shifts.start_shift("G1")

        self.assertEqual(ctx.exception.existing_shift["id"], first["id"])
        self.assertEqual(ctx.exception.status_code, 409)

    def test_guards_do_not_block_each_other(self):
        self.shifts.start_shift("G1")
        self.shifts.start_shift("G2")
        self.assertEqual(len(self.shifts.list_shifts("G2", active_only=True)), 1)

    def test_force_allows_second_active_shift(self):
        self.shifts.start_shift("G1")
        self.shifts.start_shift("G1", force=True)
        self.assertEqual(len(self.shifts.list_shifts("G1", active_only=True)), 2)

    def test_concurrent_starts_leave_one_active_shift(self):
        def start(_):
            try:
                return self.shifts.start_shift("G1")["id"]
            except ShiftConflict:
                return None

        results = self.run_concurrently(self.in_app_context(start), 10)

        winners = [r for r in results if r]
        self.assertEqual(len(winners), 1)
        active = self.shifts.list_shifts("G1", active_only=True)
        self.assertEqual([s["id"] for s in active], winners)

    def test_start_after_end_is_allowed(self):
        first = self.shifts.start_shift("G1")
        self.shifts.end_shift("G1", first["id"])

        second = self.shifts.start_shift("G1")

        self.assertNotEqual(first["id"], second["id"])
        self.assertEqual(self.store.get("guardShiftLocks/G1")["activeShiftId"], second["id"])

    def test_lock_pointing_at_ended_shift_is_reclaimed(self):
        self.store.set("guardShifts/old", {
            "guardId": "G1", "startedAt": 1, "endedAt": 2, "active": False,
        })
        self.store.set("guardShiftLocks/G1", {"activeShiftId": "old", "since": 1})

        shift = self.shifts.start_shift("G1")

        self.assertEqual(self.store.get("guardShiftLocks/G1")["activeShiftId"], shift["id"])

    def test_lock_without_shift_record_blocks_until_forced(self):
        self.store.set("guardShiftLocks/G1", {"activeShiftId": "ghost", "since": 1})

        with self.assertRaises(ShiftConflict) as ctx:
            self.shifts.start_shift("G1")
        self.assertEqual(ctx.exception.existing_shift["id"], "ghost")

        self.assertTrue(self.shifts.start_shift("G1", force=True)["active"])

    def test_failed_shift_write_releases_lock(self):
        with mock.patch.object(self.store, "set", side_effect=StoreUnavailable("store down")):
            with self.assertRaises(StoreUnavailable):
                self.shifts.start_shift("G1")

        self.assertIsNone(self.store.get("guardShiftLocks/G1")["activeShiftId"])
        self.assertEqual(self.shifts.list_shifts("G1"), [])

        shift = self.shifts.start_shift("G1")
        self.assertEqual(self.store.get("guardShiftLocks/G1")["activeShiftId"], shift["id"])

    def test_failed_shift_write_keeps_lock_taken_by_another_start(self):
        def set_after_rival(path, value):
            self.store.transaction("guardShiftLocks/G1", lambda _current: {"activeShiftId": "rival", "since": 1})
            raise StoreUnavailable("store down")

        with mock.patch.object(self.store, "set", side_effect=set_after_rival):
            with self.assertRaises(StoreUnavailable):
                self.shifts.start_shift("G1")

        self.assertEqual(self.store.get("guardShiftLocks/G1")["activeShiftId"], "rival")

    def test_end_explicit_shift(self):
        shift = self.shifts.start_shift("G1")

        ended = self.shifts.end_shift("G1", shift["id"], notes="All quiet")

        self.assertFalse(ended["active"])
        self.assertIsNotNone(ended["endedAt"])
        self.assertEqual(ended["endNotes"], "All quiet")
        self.assertIsNone(self.store.get("guardShiftLocks/G1")["activeShiftId"])

    def test_end_other_guards_shift_is_forbidden(self):
        shift = self.shifts.start_shift("G1")

        with self.assertRaises(Forbidden):
            self.shifts.end_shift("G2", shift["id"])
        self.assertTrue(self.store.get(f"guardShifts/{shift['id']}")["active"])

    def test_end_twice_conflicts(self):
        shift = self.shifts.start_shift("G1")
        self.shifts.end_shift("G1", shift["id"])

        with self.assertRaises(Conflict):
            self.shifts.end_shift("G1", shift["id"])

    def test_end_unknown_shift(self):
        with self.assertRaises(NotFound):
            self.shifts.end_shift("G1", "missing")

    def test_end_without_active_shift_is_not_found(self):
        with self.assertRaises(NotFound):
            self.shifts.end_shift("G1")

    def test_end_without_id_closes_latest_started(self):
        self.store.set("guardShifts/early", {"guardId": "G1", "startedAt": 100, "endedAt": None, "active": True})
        self.store.set("guardShifts/late", {"guardId": "G1", "startedAt": 200, "endedAt": None, "active": True})

        ended = self.shifts.end_shift("G1")

        self.assertEqual(ended["id"], "late")
        self.assertTrue(self.store.get("guardShifts/early")["active"])

    def test_end_without_id_ignores_ended_and_foreign_shifts(self):
        self.store.set("guardShifts/a", {"guardId": "G1", "startedAt": 100, "endedAt": None, "active": True})
        self.store.set("guardShifts/b", {"guardId": "G1", "startedAt": 300, "endedAt": 301, "active": False})
        self.store.set("guardShifts/c", {"guardId": "G2", "startedAt": 400, "endedAt": None, "active": True})

        self.assertEqual(self.shifts.end_shift("G1")["id"], "a")

    def test_ending_forced_older_shift_keeps_lock_on_newer(self):
        older = self.shifts.start_shift("G1")
        newer = self.shifts.start_shift("G1", force=True)

        self.shifts.end_shift("G1", older["id"])

        self.assertEqual(self.store.get("guardShiftLocks/G1")["activeShiftId"], newer["id"])
        with self.assertRaises(ShiftConflict):
            self.shifts.start_shift("G1")

    def test_list_shifts_most_recent_first(self):
        self.store.set("guardShifts/a", {"guardId": "G1", "startedAt": 100, "endedAt": 150, "active": False})
        self.store.set("guardShifts/b", {"guardId": "G1", "startedAt": 200, "endedAt": None, "active": True})

        self.assertEqual([s["id"] for s in self.shifts.list_shifts("G1")], ["b", "a"])
        self.assertEqual([s["id"] for s in self.shifts.list_shifts("G1", active_only=True)], ["b"])


if __name__ == "__main__":
    unittest.main()
