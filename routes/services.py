from typing import Optional

from fastapi import APIRouter, Depends

from auth import get_db, get_service_cache, require_admin
from database import serialize
from models import ServiceCreate, ServiceUpdate
from services.catalog import ServiceCatalog

router = APIRouter(prefix="/api/services", tags=["Services"])


def get_catalog(db=Depends(get_db), cache=Depends(get_service_cache)):
    return ServiceCatalog(db, cache)


@router.get("")
def get_all_services(catalog=Depends(get_catalog)):
    return {"message": "Services retrieved successfully", **catalog.get_all_services()}


@router.get("/category/{category}")
def get_services_by_category(category: str, catalog=Depends(get_catalog)):
    return {"message": "Services retrieved successfully", **catalog.get_services_by_category(category)}


@router.get("/search")
def search_services(
    query: Optional[str] = None, category: Optional[str] = None, catalog=Depends(get_catalog)
):
    return {"message": "Search completed successfully", **catalog.search_services(query, category)}


@router.get("/{serviceId}")
def get_service(serviceId: str, catalog=Depends(get_catalog)):
    return {"message": "Service retrieved successfully", "service": serialize(catalog.get_service(serviceId))}


@router.post("", status_code=201)
def create_service(body: ServiceCreate, admin=Depends(require_admin), catalog=Depends(get_catalog)):
    service = catalog.create_service(body.model_dump(exclude_none=True))
    return {"message": "Service created successfully", "service": service}


@router.put("/{serviceId}")
def update_service(
    serviceId: str, body: ServiceUpdate, admin=Depends(require_admin), catalog=Depends(get_catalog)
):
    service = catalog.update_service(serviceId, body.model_dump(exclude_none=True))
    return {"message": "Service updated successfully", "service": service}


@router.delete("/{serviceId}")
def delete_service(serviceId: str, admin=Depends(require_admin), catalog=Depends(get_catalog)):
    catalog.delete_service(serviceId)
    return {"message": "Service deleted successfully"}
