import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database

from database import create_document, to_object_id, utcnow
from enums import VEHICLE_TYPES, ShopRole, UserType
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from services.catalog import ServiceCatalog
from services.schedule import ScheduleStore, find_available_slots

logger = logging.getLogger(__name__)

SUMMARY_FIELDS = {"businessName": 1, "location": 1, "hourlyRate": 1, "averageRating": 1, "totalReviews": 1, "services": 1}


class MechanicService:
    def __init__(self, db: Database, catalog: Optional[ServiceCatalog] = None):
        self.db = db
        self.mechanics = db["mechanics"]
        self.users = db["users"]
        self.catalog = catalog
        self.schedule = ScheduleStore(db)

    def get_mechanic(self, mechanic_id) -> Dict[str, Any]:
        mechanic = self.mechanics.find_one({"_id": to_object_id(mechanic_id, "mechanicId")})
        if not mechanic:
            raise NotFoundError("Mechanic shop not found")
        return mechanic

    def create_mechanic(self, user_id, business_name: str, hourly_rate: float, location: Optional[Dict[str, Any]] = None):
        user_oid = to_object_id(user_id, "userId")
        user = self.users.find_one({"_id": user_oid})
        if not user:
            raise NotFoundError("User not found")

        now = utcnow()
        mechanic = create_document(
            self.db,
            "mechanics",
            {
                "businessName": business_name,
                "hourlyRate": hourly_rate,
                "location": location or {},
                "admins": [{"userId": user_oid, "role": ShopRole.OWNER.value, "addedAt": now, "addedBy": user_oid}],
                "services": [],
                "schedule": [],
                "scheduleVersion": 0,
                "averageRating": 0,
                "totalReviews": 0,
            },
        )

        if user.get("type") == UserType.CUSTOMER.value:
            self.users.update_one({"_id": user_oid}, {"$set": {"type": UserType.MECHANIC.value, "updatedAt": now}})

        logger.info(f"Mechanic shop {mechanic['_id']} created by user {user_oid}")
        return mechanic

    def admin_role(self, mechanic_id, user_id) -> Optional[ShopRole]:
        mechanic = self.mechanics.find_one(
            {"_id": to_object_id(mechanic_id, "mechanicId")}, {"admins": 1}
        )
        if not mechanic:
            raise NotFoundError("Mechanic shop not found")
        user_oid = to_object_id(user_id, "userId")
        for admin in mechanic.get("admins", []):
            if admin.get("userId") == user_oid:
                return ShopRole(admin["role"])
        return None

    def transfer_ownership(self, mechanic_id, current_user_id, new_owner_id) -> Dict[str, Any]:
        mechanic_oid = to_object_id(mechanic_id, "mechanicId")
        current_oid = to_object_id(current_user_id, "userId")
        new_owner_oid = to_object_id(new_owner_id, "newOwnerId")

        mechanic = self.mechanics.find_one(
            {"_id": mechanic_oid, "admins": {"$elemMatch": {"userId": current_oid, "role": ShopRole.OWNER.value}}}
        )
        if not mechanic:
            raise ForbiddenError("Only owner can transfer ownership")

        if not self.users.find_one({"_id": new_owner_oid}):
            raise NotFoundError("New owner not found")

        if new_owner_oid == current_oid:
            return mechanic

        now = utcnow()
        admins = []
        for admin in mechanic.get("admins", []):
            admin = dict(admin)
            if admin["userId"] == current_oid:
                admin["role"] = ShopRole.MANAGER.value
            elif admin["userId"] == new_owner_oid:
                admin["role"] = ShopRole.OWNER.value
            admins.append(admin)
        if not any(a["userId"] == new_owner_oid for a in admins):
            admins.append({"userId": new_owner_oid, "role": ShopRole.OWNER.value, "addedAt": now, "addedBy": current_oid})

        # single-document write; only lands while the caller is still the owner
        result = self.mechanics.update_one(
            {"_id": mechanic_oid, "admins": {"$elemMatch": {"userId": current_oid, "role": ShopRole.OWNER.value}}},
            {"$set": {"admins": admins, "updatedAt": now}},
        )
        if result.modified_count == 0:
            raise ConflictError("Shop admins changed concurrently, please retry")

        logger.info(f"Ownership of mechanic {mechanic_oid} transferred from {current_oid} to {new_owner_oid}")
        mechanic["admins"] = admins
        return mechanic

    def add_service(
        self,
        mechanic_id,
        service_id,
        price,
        estimated_duration,
        is_emergency: bool = False,
        vehicle_types: Optional[List[str]] = None,
        additional_info: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not service_id or not price or not estimated_duration:
            raise ValidationError(
                "Missing required fields",
                required={
                    "serviceId": "Service ID is required",
                    "price": "Service price is required",
                    "estimatedDuration": "Estimated duration in hours is required",
                },
                errors=[
                    {"field": f, "message": "Field is required"}
                    for f, v in (("serviceId", service_id), ("price", price), ("estimatedDuration", estimated_duration))
                    if not v
                ],
            )
        invalid = {}
        if estimated_duration <= 0:
            invalid["estimatedDuration"] = "Duration must be greater than 0"
        if price <= 0:
            invalid["price"] = "Price must be greater than 0"
        if invalid:
            raise ValidationError(
                "Invalid values", errors=[{"field": f, "message": m} for f, m in invalid.items()]
            )

        mechanic = self.get_mechanic(mechanic_id)
        catalog_service = self.catalog.get_service(service_id)

        if any(s.get("serviceId") == catalog_service["_id"] for s in mechanic.get("services", [])):
            raise ConflictError("Mechanic already offers this service")

        offered = {
            "_id": ObjectId(),
            "serviceId": catalog_service["_id"],
            "price": price,
            "estimatedDuration": estimated_duration,
            "isEmergency": bool(is_emergency),
            "vehicleTypes": vehicle_types or list(VEHICLE_TYPES),
            "additionalInfo": additional_info,
        }
        result = self.mechanics.update_one(
            {"_id": mechanic["_id"], "services.serviceId": {"$ne": catalog_service["_id"]}},
            {"$push": {"services": offered}, "$set": {"updatedAt": utcnow()}},
        )
        if result.modified_count == 0:
            raise ConflictError("Mechanic already offers this service")

        self.catalog.increment_popularity(catalog_service["_id"])
        logger.info(f"Mechanic {mechanic['_id']} now offers service {catalog_service['name']}")
        offered.update(
            name=catalog_service["name"],
            category=catalog_service["category"],
            description=catalog_service.get("description"),
        )
        return offered

    def update_schedule(self, mechanic_id, day, slots):
        return self.schedule.update_schedule(mechanic_id, day, slots)

    def get_available_slots(self, mechanic_id, day) -> List[Dict[str, Any]]:
        return find_available_slots(self.get_mechanic(mechanic_id), day)

    def find_by_distance(
        self,
        latitude: float,
        longitude: float,
        radius_km: float = 10,
        service_ids: Optional[List[str]] = None,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {
            "location.coordinates": {
                "$nearSphere": {
                    "$geometry": {"type": "Point", "coordinates": [longitude, latitude]},
                    "$maxDistance": radius_km * 1000,
                }
            }
        }
        wanted = [to_object_id(s, "serviceIds") for s in service_ids or []]
        if wanted:
            query["services.serviceId"] = {"$all": wanted}

        mechanics = list(self.mechanics.find(query, SUMMARY_FIELDS).limit(limit))
        for mechanic in mechanics:
            if wanted:
                mechanic["relevantServices"] = [s for s in mechanic.get("services", []) if s.get("serviceId") in wanted]
            self._populate_services(mechanic)
        return mechanics

    def find_by_service_name(self, name: str) -> List[Dict[str, Any]]:
        if not name:
            raise ValidationError(
                "Service name is required", errors=[{"field": "name", "message": "Service name is required"}]
            )
        service = self.catalog.find_by_name(name)
        if not service:
            raise NotFoundError("Service not found")
        return list(self.mechanics.find({"services.serviceId": service["_id"]}, SUMMARY_FIELDS))

    def _populate_services(self, mechanic: Dict[str, Any]) -> None:
        for offered in mechanic.get("services", []):
            catalog_service = self.db["services"].find_one(
                {"_id": offered.get("serviceId")}, {"name": 1, "category": 1, "description": 1}
            )
            if catalog_service:
                offered["service"] = catalog_service
