"""
Appointment booking and status workflow.

Appointments start ``pending``. Acceptance reserves the containing schedule
slot(s) before the status write; the status write is conditional on the prior
status and releases the reservation if it loses a race.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import create_document, page_count, serialize, start_of_day, to_naive_utc, to_object_id, utcnow
from enums import STATUS_TRANSITIONS, AppointmentStatus, AppointmentType
from errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from services.schedule import ScheduleStore

logger = logging.getLogger(__name__)

DEFAULT_DURATION_HOURS = 1


class AppointmentWorkflow:
    def __init__(self, db: Database):
        self.db = db
        self.appointments = db["appointments"]
        self.mechanics = db["mechanics"]
        self.schedule = ScheduleStore(db)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------
    def resolve_offered_service(self, mechanic: Dict[str, Any], service_id=None, service_name: Optional[str] = None):
        if not mechanic.get("services"):
            raise NotFoundError("Mechanic has no services")

        if not service_id and service_name:
            catalog_entry = self.db["services"].find_one(
                {"name": {"$regex": f"^{re.escape(service_name.strip())}$", "$options": "i"}}
            )
            if catalog_entry:
                service_id = catalog_entry["_id"]

        if not service_id:
            raise NotFoundError("Service not offered by this mechanic")

        service_oid = to_object_id(service_id, "serviceId")
        offered = next((s for s in mechanic["services"] if s.get("serviceId") == service_oid), None)
        if not offered:
            raise NotFoundError("Service not offered by this mechanic")
        return offered

    def create_appointment(
        self,
        client_id,
        mechanic_id,
        service_id=None,
        service_name: Optional[str] = None,
        start_time: Optional[datetime] = None,
        vehicle_id=None,
        appointment_type=AppointmentType.SCHEDULED,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not mechanic_id or (not service_id and not (service_name or "").strip()):
            raise ValidationError(
                "Missing required fields",
                required=["mechanicId", "serviceId OR serviceName"],
                errors=[{"field": "mechanicId/serviceId", "message": "mechanicId and serviceId or serviceName are required"}],
            )

        try:
            appointment_type = AppointmentType(appointment_type or AppointmentType.SCHEDULED)
        except ValueError:
            raise ValidationError(
                "Invalid appointment type",
                allowedTypes=[t.value for t in AppointmentType],
                errors=[{"field": "type", "message": "Invalid appointment type"}],
            )

        mechanic = self.mechanics.find_one({"_id": to_object_id(mechanic_id, "mechanicId")})
        if not mechanic:
            raise NotFoundError("Mechanic not found")

        offered = self.resolve_offered_service(mechanic, service_id, service_name)

        begin = to_naive_utc(start_time) if start_time else utcnow()
        duration = offered.get("estimatedDuration") or DEFAULT_DURATION_HOURS
        end = begin + timedelta(hours=duration)

        doc = {
            "mechanicId": mechanic["_id"],
            "clientId": to_object_id(client_id, "clientId"),
            "serviceId": offered["serviceId"],
            "status": AppointmentStatus.PENDING.value,
            "type": appointment_type.value,
            "startTime": begin,
            "endTime": end,
            "totalCost": offered.get("price"),
        }
        if vehicle_id:
            vehicle_oid = to_object_id(vehicle_id, "vehicleId")
            doc["vehicle"] = {"carModelId": vehicle_oid, "clientGarageId": vehicle_oid}
        if notes:
            doc["notes"] = notes

        appointment = create_document(self.db, "appointments", doc)
        self.db["users"].update_one({"_id": doc["clientId"]}, {"$push": {"appointmentHistory": appointment["_id"]}})
        logger.info(f"Appointment {appointment['_id']} booked with mechanic {mechanic['_id']} ({doc['type']})")
        return appointment

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------
    def list_client_appointments(self, client_id, status=None, appointment_type=None, page: int = 1, limit: int = 10):
        query: Dict[str, Any] = {"clientId": to_object_id(client_id, "clientId")}
        if status:
            query["status"] = status
        if appointment_type:
            query["type"] = appointment_type
        return self._paginate(query, DESCENDING, page, limit, self._with_mechanic)

    def list_mechanic_appointments(
        self, mechanic_id, status=None, appointment_type=None, day=None, page: int = 1, limit: int = 10
    ):
        query: Dict[str, Any] = {"mechanicId": to_object_id(mechanic_id, "mechanicId")}
        if status:
            query["status"] = status
        if appointment_type:
            query["type"] = appointment_type
        if day:
            begin = start_of_day(day)
            query["startTime"] = {"$gte": begin, "$lt": begin + timedelta(days=1)}
        return self._paginate(query, ASCENDING, page, limit, self._with_client)

    def _paginate(self, query, direction, page: int, limit: int, populate) -> Dict[str, Any]:
        page, limit = max(page, 1), max(limit, 1)
        cursor = self.appointments.find(query).sort("startTime", direction).skip((page - 1) * limit).limit(limit)
        appointments = [populate(self._with_service(a)) for a in cursor]
        total = self.appointments.count_documents(query)
        return {
            "appointments": [serialize(a) for a in appointments],
            "totalPages": page_count(total, limit),
            "currentPage": page,
            "total": total,
        }

    def _with_service(self, appointment):
        service = self.db["services"].find_one({"_id": appointment.get("serviceId")}, {"name": 1})
        appointment["service"] = service
        return appointment

    def _with_mechanic(self, appointment):
        appointment["mechanic"] = self.mechanics.find_one(
            {"_id": appointment.get("mechanicId")}, {"businessName": 1, "location": 1}
        )
        return appointment

    def _with_client(self, appointment):
        appointment["client"] = self.db["users"].find_one(
            {"_id": appointment.get("clientId")}, {"firstName": 1, "lastName": 1, "email": 1}
        )
        return appointment

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def get_appointment(self, appointment_id) -> Dict[str, Any]:
        appointment = self.appointments.find_one({"_id": to_object_id(appointment_id, "appointmentId")})
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def transition_status(self, appointment_id, status, message: Optional[str] = None) -> Dict[str, Any]:
        try:
            target = AppointmentStatus(status)
        except ValueError:
            raise InvalidStateError("Invalid status", allowedStatuses=[s.value for s in AppointmentStatus])

        appointment = self.get_appointment(appointment_id)
        current = AppointmentStatus(appointment["status"])
        if target not in STATUS_TRANSITIONS.get(current, frozenset()):
            raise InvalidStateError(
                f"Cannot move appointment from '{current.value}' to '{target.value}'",
                allowedStatuses=sorted(s.value for s in STATUS_TRANSITIONS.get(current, frozenset())),
            )

        reserved = []
        if target == AppointmentStatus.ACCEPTED:
            reserved = self.schedule.reserve_slots(
                appointment["mechanicId"], appointment["startTime"], appointment["endTime"], appointment["_id"]
            )

        now = utcnow()
        update = {
            "status": target.value,
            "mechanicResponse": {"message": message, "responseDate": now},
            "updatedAt": now,
        }
        result = self.appointments.update_one(
            {"_id": appointment["_id"], "status": current.value}, {"$set": update}
        )
        if result.modified_count == 0:
            if reserved:
                self.schedule.release_slots(appointment["mechanicId"], appointment["_id"])
            raise ConflictError("Appointment status changed concurrently, please retry")

        if target in (AppointmentStatus.CANCELLED, AppointmentStatus.REJECTED):
            self.schedule.release_slots(appointment["mechanicId"], appointment["_id"])

        logger.info(f"Appointment {appointment['_id']}: {current.value} -> {target.value}")
        appointment.update(update)
        return appointment

    def cancel_appointment(self, client_id, appointment_id) -> Dict[str, Any]:
        appointment = self.appointments.find_one(
            {"_id": to_object_id(appointment_id, "appointmentId"), "clientId": to_object_id(client_id, "clientId")}
        )
        if not appointment:
            raise NotFoundError("Appointment not found")
        current = AppointmentStatus(appointment["status"])
        if AppointmentStatus.CANCELLED not in STATUS_TRANSITIONS.get(current, frozenset()):
            raise InvalidStateError(f"Cannot cancel a {current.value} appointment")

        result = self.appointments.update_one(
            {"_id": appointment["_id"], "status": appointment["status"]},
            {"$set": {"status": AppointmentStatus.CANCELLED.value, "updatedAt": utcnow()}},
        )
        if result.modified_count == 0:
            raise ConflictError("Appointment status changed concurrently, please retry")

        self.schedule.release_slots(appointment["mechanicId"], appointment["_id"])
        logger.info(f"Appointment {appointment['_id']} cancelled by client {client_id}")
        appointment["status"] = AppointmentStatus.CANCELLED.value
        return appointment


# ----------------------------------------------------------------------
# Emergency appointments
# ----------------------------------------------------------------------
def create_emergency_appointment(workflow: AppointmentWorkflow, client_id, mechanic_id, **kwargs) -> Dict[str, Any]:
    kwargs["appointment_type"] = AppointmentType.EMERGENCY
    return workflow.create_appointment(client_id, mechanic_id, **kwargs)


def list_client_emergency_appointments(workflow: AppointmentWorkflow, client_id, **kwargs):
    kwargs["appointment_type"] = AppointmentType.EMERGENCY.value
    return workflow.list_client_appointments(client_id, **kwargs)


def list_mechanic_emergency_appointments(workflow: AppointmentWorkflow, mechanic_id, **kwargs):
    kwargs["appointment_type"] = AppointmentType.EMERGENCY.value
    return workflow.list_mechanic_appointments(mechanic_id, **kwargs)


def find_nearby_emergency_mechanics(db: Database, latitude: float, longitude: float, radius_km: float = 10) -> List[Dict[str, Any]]:
    query = {
        "services.isEmergency": True,
        "location.coordinates": {
            "$nearSphere": {
                "$geometry": {"type": "Point", "coordinates": [longitude, latitude]},
                "$maxDistance": radius_km * 1000,
            }
        },
    }
    projection = {"businessName": 1, "location": 1, "hourlyRate": 1, "averageRating": 1, "totalReviews": 1}
    return list(db["mechanics"].find(query, projection))
