from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends

from auth import get_current_user, get_db, get_service_cache, require_permission
from database import serialize, serialize_many, utcnow
from enums import Permission
from errors import ValidationError
from models import MechanicCreate, OfferedServiceCreate, SlotsRequest, TransferOwnershipRequest
from services.catalog import ServiceCatalog
from services.mechanics import MechanicService

router = APIRouter(prefix="/api/mechanics", tags=["Mechanic"])


@router.post("/create", status_code=201)
def create_mechanic(body: MechanicCreate, user=Depends(get_current_user), db=Depends(get_db)):
    location = body.location.model_dump(exclude_none=True) if body.location else None
    mechanic = MechanicService(db).create_mechanic(user["_id"], body.businessName, body.hourlyRate, location)
    return {"message": "Mechanic shop created successfully", "mechanic": serialize(mechanic)}


@router.post("/{mechanicId}/transfer-ownership")
def transfer_ownership(
    mechanicId: str, body: TransferOwnershipRequest, user=Depends(get_current_user), db=Depends(get_db)
):
    mechanic = MechanicService(db).transfer_ownership(mechanicId, user["_id"], body.newOwnerId)
    return {"message": "Ownership transferred successfully", "mechanic": serialize(mechanic)}


@router.post("/{mechanicId}/slots")
def create_slots(
    mechanicId: str,
    body: SlotsRequest,
    user=Depends(require_permission(Permission.MANAGE_SCHEDULE)),
    db=Depends(get_db),
):
    slots = [slot.model_dump() for slot in body.slots]
    schedule = MechanicService(db).update_schedule(mechanicId, body.date, slots)
    return {"message": "Slots created successfully", "schedule": serialize(schedule)}


@router.get("/{mechanicId}/slots")
def get_available_slots(mechanicId: str, date: Optional[datetime] = None, db=Depends(get_db)):
    slots = MechanicService(db).get_available_slots(mechanicId, date or utcnow())
    return {"message": "Available slots retrieved successfully", "slots": serialize(slots)}


@router.post("/{mechanicId}/services", status_code=201)
def add_service(
    mechanicId: str,
    body: OfferedServiceCreate,
    user=Depends(require_permission(Permission.MANAGE_SERVICES)),
    db=Depends(get_db),
    cache=Depends(get_service_cache),
):
    mechanics = MechanicService(db, ServiceCatalog(db, cache))
    offered = mechanics.add_service(
        mechanicId,
        body.serviceId,
        body.price,
        body.estimatedDuration,
        is_emergency=body.isEmergency,
        vehicle_types=body.vehicleTypes,
        additional_info=body.additionalInfo,
    )
    return {"message": "Service added successfully", "service": serialize(offered)}


@router.get("/nearby")
def get_mechanics_by_distance(
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    radius: float = 10,
    serviceId: Optional[str] = None,
    serviceIds: Optional[str] = None,
    limit: int = 10,
    db=Depends(get_db),
):
    if latitude is None or longitude is None:
        raise ValidationError("Missing coordinates", required=["latitude", "longitude"])

    wanted = [s.strip() for s in (serviceIds or "").split(",") if s.strip()]
    if serviceId:
        wanted.append(serviceId)
    mechanics = MechanicService(db).find_by_distance(latitude, longitude, radius, wanted, limit)
    return {"message": "Mechanics retrieved successfully", "mechanics": serialize_many(mechanics), "count": len(mechanics)}


@router.get("/by-service")
def get_mechanics_by_service_name(
    name: Optional[str] = None, db=Depends(get_db), cache=Depends(get_service_cache)
):
    mechanics = MechanicService(db, ServiceCatalog(db, cache)).find_by_service_name(name)
    return {"message": "Mechanics retrieved successfully", "mechanics": serialize_many(mechanics), "count": len(mechanics)}
