import logging
import re
from typing import Any, Dict, Optional

from pymongo import ASCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, serialize, serialize_many, to_object_id, utcnow
from errors import ConflictError, NotFoundError, ValidationError
from services.service_cache import ServiceCatalogCache

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["name", "category", "description"]
UPDATABLE_FIELDS = ["name", "category", "description", "imageUrl"]


class ServiceCatalog:
    """Catalog reads go through the cache; every write invalidates all of it."""

    def __init__(self, db: Database, cache: ServiceCatalogCache):
        self.db = db
        self.services = db["services"]
        self.cache = cache

    def get_all_services(self) -> Dict[str, Any]:
        cached = self.cache.get_all()
        if cached is not None:
            return {"services": cached, "fromCache": True}

        services = serialize_many(self.services.find().sort([("category", ASCENDING), ("name", ASCENDING)]))
        self.cache.set_all(services)
        return {"services": services, "fromCache": False}

    def get_services_by_category(self, category: str) -> Dict[str, Any]:
        cached = self.cache.get_category(category)
        if cached is not None:
            return {"services": cached, "category": category, "fromCache": True}

        services = serialize_many(self.services.find({"category": category}).sort("name", ASCENDING))
        self.cache.set_category(category, services)
        return {"services": services, "category": category, "fromCache": False}

    def search_services(self, query: Optional[str] = None, category: Optional[str] = None) -> Dict[str, Any]:
        key = self.cache.search_key(query, category)
        cached = self.cache.get_search(key)
        if cached is not None:
            return {"services": cached, "count": len(cached), "fromCache": True}

        criteria: Dict[str, Any] = {}
        if query:
            pattern = re.escape(query.strip())
            criteria["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
            ]
        if category:
            criteria["category"] = category

        services = serialize_many(self.services.find(criteria).sort("name", ASCENDING))
        self.cache.set_search(key, services)
        return {"services": services, "count": len(services), "fromCache": False}

    def get_service(self, service_id) -> Dict[str, Any]:
        service = self.services.find_one({"_id": to_object_id(service_id, "serviceId")})
        if not service:
            raise NotFoundError("Service not found")
        return service

    def find_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        return self.services.find_one({"name": {"$regex": f"^{re.escape(name.strip())}$", "$options": "i"}})

    def create_service(self, data: Dict[str, Any]) -> Dict[str, Any]:
        missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
        if missing:
            raise ValidationError(
                "Missing required fields",
                missingFields=missing,
                errors=[{"field": f, "message": "Field is required"} for f in missing],
            )

        if self.services.find_one({"name": data["name"]}):
            raise ConflictError("Service with this name already exists")

        doc = {field: data.get(field) for field in UPDATABLE_FIELDS if data.get(field) is not None}
        doc["popularity"] = 0
        try:
            service = create_document(self.db, "services", doc)
        except DuplicateKeyError:
            raise ConflictError("Service with this name already exists")

        self.cache.invalidate()
        logger.info(f"Catalog service created: {service['name']}")
        return serialize(service)

    def update_service(self, service_id, data: Dict[str, Any]) -> Dict[str, Any]:
        oid = to_object_id(service_id, "serviceId")
        update = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS and v is not None}
        update["updatedAt"] = utcnow()
        try:
            result = self.services.update_one({"_id": oid}, {"$set": update})
        except DuplicateKeyError:
            raise ConflictError("Service with this name already exists")
        if result.matched_count == 0:
            raise NotFoundError("Service not found")

        self.cache.invalidate()
        logger.info(f"Catalog service updated: {oid}")
        return serialize(self.services.find_one({"_id": oid}))

    def delete_service(self, service_id) -> None:
        oid = to_object_id(service_id, "serviceId")
        result = self.services.delete_one({"_id": oid})
        if result.deleted_count == 0:
            raise NotFoundError("Service not found")

        self.cache.invalidate()
        logger.info(f"Catalog service deleted: {oid}")

    def increment_popularity(self, service_id) -> None:
        self.services.update_one({"_id": to_object_id(service_id, "serviceId")}, {"$inc": {"popularity": 1}})
