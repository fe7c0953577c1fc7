from typing import Optional

from fastapi import APIRouter, Depends

from auth import check_permission, get_current_user, get_db, get_mechanic_admin_role
from database import serialize, serialize_many
from enums import Permission
from errors import ValidationError
from models import AppointmentCreate, AppointmentStatusUpdate, NearbyRequest
from services.appointments import (
    AppointmentWorkflow,
    create_emergency_appointment,
    find_nearby_emergency_mechanics,
    list_client_emergency_appointments,
    list_mechanic_emergency_appointments,
)

router = APIRouter(prefix="/api/emergency-appointments", tags=["Emergency"])


@router.post("/create", status_code=201)
def create(body: AppointmentCreate, user=Depends(get_current_user), db=Depends(get_db)):
    appointment = create_emergency_appointment(
        AppointmentWorkflow(db),
        user["_id"],
        body.mechanicId,
        service_id=body.serviceId,
        service_name=body.serviceName,
        start_time=body.startTime,
        vehicle_id=body.vehicleId,
        notes=body.notes,
    )
    return {"message": "Emergency appointment created successfully", "appointment": serialize(appointment)}


@router.get("/user")
def get_user_emergency_appointments(
    status: Optional[str] = None, page: int = 1, limit: int = 10, user=Depends(get_current_user), db=Depends(get_db)
):
    result = list_client_emergency_appointments(
        AppointmentWorkflow(db), user["_id"], status=status, page=page, limit=limit
    )
    return {"message": "Emergency appointments retrieved successfully", **result}


@router.get("/mechanic/{mechanicId}")
def get_mechanic_emergency_appointments(
    mechanicId: str,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    role=Depends(get_mechanic_admin_role),
    db=Depends(get_db),
):
    result = list_mechanic_emergency_appointments(
        AppointmentWorkflow(db), mechanicId, status=status, page=page, limit=limit
    )
    return {"message": "Emergency appointments retrieved successfully", **result}


@router.post("/nearby-mechanics")
def find_nearby_mechanics(body: NearbyRequest, user=Depends(get_current_user), db=Depends(get_db)):
    if body.latitude is None or body.longitude is None:
        raise ValidationError("Location coordinates are required", required=["latitude", "longitude"])

    mechanics = find_nearby_emergency_mechanics(db, body.latitude, body.longitude, body.radius)
    return {"message": "Nearby mechanics retrieved successfully", "mechanics": serialize_many(mechanics)}


@router.patch("/{appointmentId}/status")
def update_emergency_status(
    appointmentId: str, body: AppointmentStatusUpdate, user=Depends(get_current_user), db=Depends(get_db)
):
    workflow = AppointmentWorkflow(db)
    appointment = workflow.get_appointment(appointmentId)
    check_permission(db, appointment["mechanicId"], user, Permission.MANAGE_APPOINTMENTS)

    appointment = workflow.transition_status(appointment["_id"], body.status, body.message)
    return {"message": "Appointment status updated successfully", "appointment": serialize(appointment)}
