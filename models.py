from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class SignupRequest(BaseModel):
    # presence is checked by the service so missing fields are reported together
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    type: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None


class VehicleCreate(BaseModel):
    carModelId: Optional[str] = None
    licensePlate: Optional[str] = None
    year: Optional[int] = None
    color: Optional[str] = None
    mileage: Optional[int] = None
    vin: Optional[str] = None


class UserStatusUpdate(BaseModel):
    status: str


class Location(BaseModel):
    type: str = "Point"
    coordinates: List[float] = Field(..., min_length=2, max_length=2)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None


class MechanicCreate(BaseModel):
    businessName: str
    hourlyRate: float = Field(..., gt=0)
    location: Optional[Location] = None


class TransferOwnershipRequest(BaseModel):
    newOwnerId: str


class Slot(BaseModel):
    startTime: datetime
    endTime: datetime
    isAvailable: bool = True


class SlotsRequest(BaseModel):
    date: datetime
    slots: List[Slot]


class OfferedServiceCreate(BaseModel):
    serviceId: Optional[str] = None
    price: Optional[float] = None
    estimatedDuration: Optional[float] = None
    isEmergency: bool = False
    vehicleTypes: Optional[List[str]] = None
    additionalInfo: Optional[str] = None


class AppointmentCreate(BaseModel):
    mechanicId: Optional[str] = None
    serviceId: Optional[str] = None
    serviceName: Optional[str] = None
    startTime: Optional[datetime] = None
    vehicleId: Optional[str] = None
    type: Optional[str] = None
    notes: Optional[str] = None


class AppointmentStatusUpdate(BaseModel):
    status: str
    message: Optional[str] = None


class NearbyRequest(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius: float = 10


class ReviewCreate(BaseModel):
    appointmentId: str
    rating: float
    review: Optional[str] = None


class ReviewUpdate(BaseModel):
    rating: float
    review: Optional[str] = None


class ServiceCreate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = None


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = None
