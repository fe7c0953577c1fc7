import logging
import re
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import hash_password, verify_password
from database import create_document, page_count, serialize, to_object_id, utcnow
from enums import AccountStatus, TokenType, UserType
from errors import ConflictError, NotFoundError, UnauthenticatedError, ValidationError
from services.token_service import TokenService

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SIGNUP_FIELDS = ["firstName", "lastName", "email", "password", "type"]
VEHICLE_FIELDS = ["carModelId", "licensePlate", "year"]
PRIVATE_FIELDS = {"password": 0}


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_RE.match(email))


def sanitize_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "firstName": user.get("firstName"),
        "lastName": user.get("lastName"),
        "email": user.get("email"),
        "type": user.get("type"),
        "verified": user.get("verified", False),
        "emailVerified": user.get("emailVerified", False),
    }


class UserService:
    def __init__(self, db: Database, token_service: Optional[TokenService] = None):
        self.db = db
        self.users = db["users"]
        self.token_service = token_service

    def email_exists(self, email: str) -> bool:
        return self.users.find_one({"email": email.lower()}, {"_id": 1}) is not None

    def check_email(self, email: str) -> Dict[str, Any]:
        if not is_valid_email(email):
            raise ValidationError("Invalid email format", valid=False, errors=[{"field": "email", "message": "Invalid email format"}])
        exists = self.email_exists(email)
        return {"available": not exists, "message": "Email already registered" if exists else "Email available"}

    def signup(self, data: Dict[str, Any], device: Optional[Dict[str, Any]] = None):
        missing = [field for field in SIGNUP_FIELDS if not data.get(field)]
        if missing:
            raise ValidationError(
                "All fields are required",
                missingFields=missing,
                errors=[{"field": f, "message": "Field is required"} for f in missing],
            )
        if not is_valid_email(data["email"]):
            raise ValidationError("Invalid email format", field="email", errors=[{"field": "email", "message": "Invalid email format"}])
        try:
            user_type = UserType(data["type"])
        except ValueError:
            raise ValidationError("Invalid user type", field="type", errors=[{"field": "type", "message": "Invalid user type"}])
        if self.email_exists(data["email"]):
            raise ConflictError("Email already registered", field="email")

        now = utcnow()
        try:
            user = create_document(
                self.db,
                "users",
                {
                    "firstName": data["firstName"],
                    "lastName": data["lastName"],
                    "email": data["email"].lower(),
                    "phone": data.get("phone"),
                    "password": hash_password(data["password"]),
                    "type": user_type.value,
                    "verified": False,
                    "emailVerified": False,
                    "status": AccountStatus.ACTIVE.value,
                    "lastLoginAt": now,
                    "garage": [],
                    "appointmentHistory": [],
                },
            )
        except DuplicateKeyError:
            raise ConflictError("Email already registered", field="email")

        token = self.token_service.issue_token(user["_id"], TokenType.AUTH, device)
        logger.info(f"User {user['_id']} signed up as {user_type.value}")
        return user, token

    def login(self, email: str, password: str, device: Optional[Dict[str, Any]] = None):
        user = self.users.find_one({"email": (email or "").lower()})
        if not user or not verify_password(password or "", user["password"]):
            logger.warning(f"Failed login attempt for {email}")
            raise UnauthenticatedError("Invalid credentials")
        if user.get("status", AccountStatus.ACTIVE.value) != AccountStatus.ACTIVE.value:
            logger.warning(f"Login refused for {user['status']} account {user['_id']}")
            raise UnauthenticatedError("Account is not active")

        token = self.token_service.issue_token(user["_id"], TokenType.AUTH, device)
        self.users.update_one({"_id": user["_id"]}, {"$set": {"lastLoginAt": utcnow()}})
        return user, token

    def get_user(self, user_id, projection=None) -> Dict[str, Any]:
        user = self.users.find_one({"_id": to_object_id(user_id, "userId")}, projection)
        if not user:
            raise NotFoundError("User not found")
        return user

    def get_profile(self, user_id) -> Dict[str, Any]:
        user = self.get_user(user_id, PRIVATE_FIELDS)
        appointments = []
        for appointment in self.db["appointments"].find({"clientId": user["_id"]}).sort("startTime", DESCENDING):
            appointment["mechanic"] = self.db["mechanics"].find_one({"_id": appointment["mechanicId"]}, {"businessName": 1})
            appointment["service"] = self.db["services"].find_one({"_id": appointment["serviceId"]}, {"name": 1})
            appointments.append(appointment)
        user["appointmentHistory"] = appointments
        return user

    def update_profile(self, user_id, data: Dict[str, Any]) -> Dict[str, Any]:
        update = {field: data[field] for field in ("firstName", "lastName", "phone") if data.get(field)}
        if data.get("password"):
            update["password"] = hash_password(data["password"])
        update["updatedAt"] = utcnow()

        oid = to_object_id(user_id, "userId")
        result = self.users.update_one({"_id": oid}, {"$set": update})
        if result.matched_count == 0:
            raise NotFoundError("User not found")
        return self.users.find_one({"_id": oid}, PRIVATE_FIELDS)

    def add_vehicle(self, user_id, vehicle: Dict[str, Any]) -> Dict[str, Any]:
        missing = [field for field in VEHICLE_FIELDS if not vehicle.get(field)]
        if missing:
            raise ValidationError(
                "Invalid vehicle data",
                required=VEHICLE_FIELDS,
                errors=[{"field": f, "message": "Field is required"} for f in missing],
            )

        user = self.get_user(user_id, {"garage": 1})
        if any(v.get("licensePlate") == vehicle["licensePlate"] for v in user.get("garage", [])):
            raise ConflictError("Vehicle with this license plate already exists")

        entry = {k: v for k, v in vehicle.items() if v is not None}
        entry["_id"] = ObjectId()
        entry["carModelId"] = to_object_id(vehicle["carModelId"], "carModelId")
        entry["maintenanceHistory"] = []
        self.users.update_one({"_id": user["_id"]}, {"$push": {"garage": entry}, "$set": {"updatedAt": utcnow()}})
        logger.info(f"Vehicle {entry['_id']} added to garage of user {user['_id']}")
        return entry

    def remove_vehicle(self, user_id, vehicle_id) -> None:
        oid = to_object_id(user_id, "userId")
        vehicle_oid = to_object_id(vehicle_id, "vehicleId")
        if not self.users.find_one({"_id": oid}, {"_id": 1}):
            raise NotFoundError("User not found")
        result = self.users.update_one(
            {"_id": oid, "garage._id": vehicle_oid}, {"$pull": {"garage": {"_id": vehicle_oid}}}
        )
        if result.modified_count == 0:
            raise NotFoundError("Vehicle not found")

    def list_users(self, page: int = 1, limit: int = 10, search: Optional[str] = None) -> Dict[str, Any]:
        page, limit = max(page, 1), max(limit, 1)
        query: Dict[str, Any] = {}
        if search:
            pattern = re.escape(search)
            query["$or"] = [
                {"firstName": {"$regex": pattern, "$options": "i"}},
                {"lastName": {"$regex": pattern, "$options": "i"}},
                {"email": {"$regex": pattern, "$options": "i"}},
            ]
        users = self.users.find(query, PRIVATE_FIELDS).sort("createdAt", DESCENDING).skip((page - 1) * limit).limit(limit)
        total = self.users.count_documents(query)
        return {
            "users": [serialize(u) for u in users],
            "totalPages": page_count(total, limit),
            "currentPage": page,
            "total": total,
        }

    def update_user_status(self, user_id, status) -> Dict[str, Any]:
        try:
            status = AccountStatus(status)
        except ValueError:
            raise ValidationError("Invalid status", allowedStatuses=[s.value for s in AccountStatus])

        oid = to_object_id(user_id, "userId")
        result = self.users.update_one({"_id": oid}, {"$set": {"status": status.value, "updatedAt": utcnow()}})
        if result.matched_count == 0:
            raise NotFoundError("User not found")

        if status != AccountStatus.ACTIVE:
            self.token_service.invalidate_user_tokens(oid)
        logger.info(f"User {oid} status set to {status.value}")
        return self.users.find_one({"_id": oid}, PRIVATE_FIELDS)
