from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from auth import check_permission, get_current_user, get_db, get_mechanic_admin_role
from database import serialize
from enums import Permission
from models import AppointmentCreate, AppointmentStatusUpdate
from services.appointments import AppointmentWorkflow

router = APIRouter(prefix="/api/appointments", tags=["Appointments"])


@router.post("/create", status_code=201)
@router.post("/book", status_code=201)
def create_appointment(body: AppointmentCreate, user=Depends(get_current_user), db=Depends(get_db)):
    appointment = AppointmentWorkflow(db).create_appointment(
        user["_id"],
        body.mechanicId,
        service_id=body.serviceId,
        service_name=body.serviceName,
        start_time=body.startTime,
        vehicle_id=body.vehicleId,
        appointment_type=body.type,
        notes=body.notes,
    )
    return {"message": "Appointment created successfully", "appointment": serialize(appointment)}


@router.get("/user")
def get_user_appointments(
    status: Optional[str] = None,
    appointment_type: Optional[str] = Query(None, alias="type"),
    page: int = 1,
    limit: int = 10,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    result = AppointmentWorkflow(db).list_client_appointments(user["_id"], status, appointment_type, page, limit)
    return {"message": "Appointments retrieved successfully", **result}


@router.get("/mechanic/{mechanicId}")
def get_mechanic_appointments(
    mechanicId: str,
    status: Optional[str] = None,
    appointment_type: Optional[str] = Query(None, alias="type"),
    date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 10,
    role=Depends(get_mechanic_admin_role),
    db=Depends(get_db),
):
    result = AppointmentWorkflow(db).list_mechanic_appointments(mechanicId, status, appointment_type, date, page, limit)
    return {"message": "Appointments retrieved successfully", **result}


@router.patch("/{appointmentId}/status")
def update_appointment_status(
    appointmentId: str, body: AppointmentStatusUpdate, user=Depends(get_current_user), db=Depends(get_db)
):
    workflow = AppointmentWorkflow(db)
    appointment = workflow.get_appointment(appointmentId)
    check_permission(db, appointment["mechanicId"], user, Permission.MANAGE_APPOINTMENTS)

    appointment = workflow.transition_status(appointment["_id"], body.status, body.message)
    return {"message": "Appointment status updated successfully", "appointment": serialize(appointment)}
