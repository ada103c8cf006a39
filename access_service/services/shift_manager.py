"""
Shift Manager - Access Service
Guard on-duty periods: NoActiveShift -> Active -> Ended.

Exclusivity is held by a per-guard lock record, guardShiftLocks/{guardId},
which is only ever swapped through RecordStore.transaction(). The lock is
taken before the shift record is written, so a lock whose shift record is
missing is treated as held; starting with force=True clears it.
"""

import logging
import uuid

from access_service.errors import (
    Conflict,
    Forbidden,
    InvalidInput,
    NotFound,
    ShiftConflict,
    StoreUnavailable,
)
from access_service.services.record_store import now_ms

logger = logging.getLogger(__name__)

SHIFTS_PATH = "guardShifts"
LOCKS_PATH = "guardShiftLocks"


def is_active(shift):
    return shift.get("endedAt") is None and shift.get("active") is not False


def most_recent(shifts):
    return max(shifts, key=lambda s: (s.get("startedAt") or 0, s["id"]))


class ShiftManager:
    def __init__(self, store):
        self.store = store

    def _shifts_for(self, guard_id):
        rows = self.store.query(SHIFTS_PATH, equal_to=("guardId", guard_id))
        return [{"id": key, **value} for key, value in rows]

    def get_shift(self, shift_id):
        if not shift_id or "/" in str(shift_id):
            return None
        shift = self.store.get(f"{SHIFTS_PATH}/{shift_id}")
        return {"id": shift_id, **shift} if shift is not None else None

    def list_shifts(self, guard_id, active_only=False):
        shifts = self._shifts_for(guard_id)
        if active_only:
            shifts = [s for s in shifts if is_active(s)]
        return sorted(shifts, key=lambda s: (s.get("startedAt") or 0, s["id"]), reverse=True)

    def _release_lock(self, guard_id, shift_id, now):
        """Clear the guard's lock only while it still names shift_id."""
        def release(current):
            if not current or current.get("activeShiftId") != shift_id:
                return None
            return {"activeShiftId": None, "releasedAt": now}

        return self.store.transaction(f"{LOCKS_PATH}/{guard_id}", release)

    def start_shift(self, guard_id, notes=None, force=False):
        if not guard_id:
            raise InvalidInput("Missing guard id")

        shifts = self._shifts_for(guard_id)
        active = [s for s in shifts if is_active(s)]
        if active and not force:
            raise ShiftConflict(most_recent(active))

        ended_ids = {s["id"] for s in shifts if not is_active(s)}
        shift_id = uuid.uuid4().hex
        now = now_ms()

        def claim_lock(current):
            held_by = (current or {}).get("activeShiftId")
            if held_by and held_by not in ended_ids and not force:
                return None
            return {"activeShiftId": shift_id, "since": now}

        result = self.store.transaction(f"{LOCKS_PATH}/{guard_id}", claim_lock)
        if not result.committed:
            held_by = result.snapshot["activeShiftId"]
            existing = self.get_shift(held_by) or {"id": held_by, "guardId": guard_id}
            logger.info("Guard %s lost a start race to shift %s", guard_id, held_by)
            raise ShiftConflict(existing)

        shift = {
            "guardId": guard_id,
            "startedAt": now,
            "endedAt": None,
            "active": True,
            "notes": notes,
        }
        try:
            self.store.set(f"{SHIFTS_PATH}/{shift_id}", shift)
        except StoreUnavailable:
            try:
                self._release_lock(guard_id, shift_id, now_ms())
            except StoreUnavailable as e:
                logger.error("Guard %s lock still names unwritten shift %s: %s", guard_id, shift_id, e)
            raise
        if force and active:
            logger.warning("Guard %s forced a new shift %s over %d active shift(s)",
                           guard_id, shift_id, len(active))
        else:
            logger.info("Guard %s started shift %s", guard_id, shift_id)
        return {"id": shift_id, **shift}

    def end_shift(self, guard_id, shift_id=None, notes=None):
        if shift_id:
            shift = self.get_shift(shift_id)
            if shift is None:
                raise NotFound(f"Shift {shift_id} not found")
            if shift.get("guardId") != guard_id:
                raise Forbidden("Shift belongs to another guard")
            if not is_active(shift):
                raise Conflict("Shift already ended", payload={"shift": shift})
        else:
            active = [s for s in self._shifts_for(guard_id) if is_active(s)]
            if not active:
                raise NotFound("No active shift for this guard")
            shift = most_recent(active)
            shift_id = shift["id"]

        now = now_ms()

        def close(current):
            if current is None or not is_active(current):
                return None
            current["endedAt"] = now
            current["active"] = False
            if notes:
                current["endNotes"] = notes
            return current

        result = self.store.transaction(f"{SHIFTS_PATH}/{shift_id}", close)
        if not result.committed:
            raise Conflict("Shift already ended", payload={"shift": {"id": shift_id, **(result.snapshot or {})}})

        self._release_lock(guard_id, shift_id, now)
        logger.info("Guard %s ended shift %s", guard_id, shift_id)
        return {"id": shift_id, **result.snapshot}
