"""
Per-mechanic, per-date time slots.

Slots are created explicitly by shop admins, never generated. An appointment
matches a slot only when the slot window fully contains it, so an appointment
spanning two adjacent slots matches neither.

Writes to ``mechanic.schedule`` go through an optimistic compare-and-swap on
``scheduleVersion`` so concurrent reservations cannot both claim a slot.
"""
import copy
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo.database import Database

from database import start_of_day, to_naive_utc, to_object_id, utcnow
from errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MAX_SCHEDULE_WRITE_ATTEMPTS = 3


def same_day(a: datetime, b: datetime) -> bool:
    return start_of_day(a) == start_of_day(b)


def find_schedule_day(mechanic: Dict[str, Any], day) -> Optional[Dict[str, Any]]:
    target = start_of_day(day)
    for entry in mechanic.get("schedule") or []:
        if entry.get("date") is not None and start_of_day(entry["date"]) == target:
            return entry
    return None


def slot_contains(slot: Dict[str, Any], start: datetime, end: datetime) -> bool:
    return slot["startTime"] <= start and slot["endTime"] >= end


def check_slot_availability(mechanic: Dict[str, Any], start: datetime, end: datetime) -> bool:
    start, end = to_naive_utc(start), to_naive_utc(end)
    entry = find_schedule_day(mechanic, start)
    if not entry:
        return False
    return any(slot.get("isAvailable", True) and slot_contains(slot, start, end) for slot in entry.get("slots", []))


def find_available_slots(mechanic: Dict[str, Any], day) -> List[Dict[str, Any]]:
    entry = find_schedule_day(mechanic, day)
    if not entry:
        return []
    return [slot for slot in entry.get("slots", []) if slot.get("isAvailable", True)]


def validate_slots(slots) -> bool:
    if not isinstance(slots, list) or not slots:
        return False
    for slot in slots:
        start, end = slot.get("startTime"), slot.get("endTime")
        if not start or not end:
            return False
        if to_naive_utc(start) >= to_naive_utc(end):
            return False
    return True


def normalize_slot(slot: Dict[str, Any]) -> Dict[str, Any]:
    normalized = {
        "_id": ObjectId(),
        "startTime": to_naive_utc(slot["startTime"]),
        "endTime": to_naive_utc(slot["endTime"]),
        "isAvailable": slot.get("isAvailable", True),
    }
    if slot.get("appointmentId"):
        normalized["appointmentId"] = to_object_id(slot["appointmentId"], "appointmentId")
    return normalized


def merge_day_slots(existing: List[Dict[str, Any]], new_slots: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Replace a day's slots while keeping every existing reservation."""
    reserved = [slot for slot in existing if slot.get("appointmentId")]
    merged = []
    for slot in new_slots:
        match = next(
            (r for r in reserved if r["startTime"] == slot["startTime"] and r["endTime"] == slot["endTime"]),
            None,
        )
        if match:
            slot["isAvailable"] = False
            slot["appointmentId"] = match["appointmentId"]
            reserved.remove(match)
        merged.append(slot)
    merged.extend(reserved)
    merged.sort(key=lambda s: s["startTime"])
    return merged


class ScheduleStore:
    def __init__(self, db: Database):
        self.mechanics = db["mechanics"]

    def _modify(self, mechanic_id, mutate: Callable[[List[Dict[str, Any]]], Tuple[Any, bool]]):
        oid = to_object_id(mechanic_id, "mechanicId")
        for attempt in range(1, MAX_SCHEDULE_WRITE_ATTEMPTS + 1):
            mechanic = self.mechanics.find_one({"_id": oid}, {"schedule": 1, "scheduleVersion": 1})
            if not mechanic:
                raise NotFoundError("Mechanic shop not found")

            schedule = copy.deepcopy(mechanic.get("schedule") or [])
            value, changed = mutate(schedule)
            if not changed:
                return value, schedule

            if "scheduleVersion" in mechanic:
                guard = {"_id": oid, "scheduleVersion": mechanic["scheduleVersion"]}
            else:
                guard = {"_id": oid, "scheduleVersion": {"$exists": False}}
            result = self.mechanics.update_one(
                guard,
                {"$set": {"schedule": schedule, "updatedAt": utcnow()}, "$inc": {"scheduleVersion": 1}},
            )
            if result.modified_count:
                return value, schedule
            logger.warning(f"Schedule of mechanic {oid} changed concurrently (attempt {attempt})")

        raise ConflictError("Schedule was modified concurrently, please retry")

    def update_schedule(self, mechanic_id, day, slots: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not validate_slots(slots):
            raise ValidationError("Invalid slots format", errors=[{"field": "slots", "message": "Invalid slots format"}])
        target = start_of_day(day)
        new_slots = [normalize_slot(s) for s in slots]

        def mutate(schedule):
            entry = next((e for e in schedule if start_of_day(e["date"]) == target), None)
            if entry:
                entry["slots"] = merge_day_slots(entry.get("slots", []), new_slots)
            else:
                schedule.append({"_id": ObjectId(), "date": target, "slots": sorted(new_slots, key=lambda s: s["startTime"])})
                schedule.sort(key=lambda e: e["date"])
            return None, True

        _, schedule = self._modify(mechanic_id, mutate)
        logger.info(f"Schedule for mechanic {mechanic_id} on {target.date()} set to {len(new_slots)} slot(s)")
        return schedule

    def reserve_slots(self, mechanic_id, start: datetime, end: datetime, appointment_id) -> List[Dict[str, Any]]:
        """Mark every slot containing ``[start, end)`` as taken by the appointment.

        Returns the reserved slots; an empty list means no slot contained the
        window and nothing was reserved.
        """
        start, end = to_naive_utc(start), to_naive_utc(end)
        appointment_id = to_object_id(appointment_id, "appointmentId")

        def mutate(schedule):
            entry = next((e for e in schedule if same_day(e["date"], start)), None)
            if not entry:
                return [], False
            containing = [s for s in entry.get("slots", []) if slot_contains(s, start, end)]
            taken = [s for s in containing if not s.get("isAvailable", True)]
            # an unavailable slot with no appointment was closed by the shop
            if any(not s.get("appointmentId") for s in taken):
                raise ConflictError("Requested time slot is blocked")
            if any(s["appointmentId"] != appointment_id for s in taken):
                raise ConflictError("Requested time slot is already booked")
            for slot in containing:
                slot["isAvailable"] = False
                slot["appointmentId"] = appointment_id
            return containing, bool(containing)

        reserved, _ = self._modify(mechanic_id, mutate)
        if not reserved:
            logger.info(f"No slot on mechanic {mechanic_id} schedule contains {start} - {end}; nothing reserved")
        return reserved

    def release_slots(self, mechanic_id, appointment_id) -> int:
        appointment_id = to_object_id(appointment_id, "appointmentId")

        def mutate(schedule):
            released = 0
            for entry in schedule:
                for slot in entry.get("slots", []):
                    if slot.get("appointmentId") == appointment_id:
                        slot["isAvailable"] = True
                        slot.pop("appointmentId", None)
                        released += 1
            return released, released > 0

        released, _ = self._modify(mechanic_id, mutate)
        return released
