from fastapi import APIRouter, Depends

from auth import get_current_user, get_db
from database import serialize
from models import ProfileUpdate, VehicleCreate
from services.appointments import AppointmentWorkflow
from services.users import UserService

router = APIRouter(prefix="/api/users", tags=["Customer"])


@router.get("/profile")
def get_profile(user=Depends(get_current_user), db=Depends(get_db)):
    profile = UserService(db).get_profile(user["_id"])
    return {"message": "Profile retrieved successfully", "user": serialize(profile)}


@router.put("/profile")
def update_profile(body: ProfileUpdate, user=Depends(get_current_user), db=Depends(get_db)):
    updated = UserService(db).update_profile(user["_id"], body.model_dump(exclude_none=True))
    return {"message": "Profile updated successfully", "user": serialize(updated)}


@router.post("/garage/add", status_code=201)
def add_vehicle(body: VehicleCreate, user=Depends(get_current_user), db=Depends(get_db)):
    vehicle = UserService(db).add_vehicle(user["_id"], body.model_dump())
    return {"message": "Vehicle added successfully", "vehicle": serialize(vehicle)}


@router.delete("/garage/{vehicleId}")
def remove_vehicle(vehicleId: str, user=Depends(get_current_user), db=Depends(get_db)):
    UserService(db).remove_vehicle(user["_id"], vehicleId)
    return {"message": "Vehicle removed successfully"}


@router.patch("/appointments/{appointmentId}/cancel")
def cancel_appointment(appointmentId: str, user=Depends(get_current_user), db=Depends(get_db)):
    appointment = AppointmentWorkflow(db).cancel_appointment(user["_id"], appointmentId)
    return {"message": "Appointment cancelled successfully", "appointment": serialize(appointment)}
