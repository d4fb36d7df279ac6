from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime
from shiptrack.schemas import PaymentStatus, ServiceType, ShipmentStatus

class SignupPayload(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1)
    phone: Optional[str] = ''

class LoginPayload(BaseModel):
    email: EmailStr
    password: str

class UserRead(BaseModel):
    id: str
    email: str
    full_name: str
    phone: str
    role: str
    created_at: datetime

class SessionRead(BaseModel):
    user: UserRead
    access_token: str
    token_type: str = 'bearer'
    expires_at: datetime

class CreateShipment(BaseModel):
    sender_name: str
    sender_address: str = ''
    sender_phone: str = ''
    receiver_name: str
    receiver_address: str = ''
    receiver_phone: str = ''
    package_weight: float = Field(allow_inf_nan=False)
    package_dimensions: str = ''
    service_type: str = ServiceType.STANDARD.value

class ShipmentOut(BaseModel):
    id: str
    user_id: str
    tracking_number: str
    sender_name: str
    sender_address: str
    sender_phone: str
    receiver_name: str
    receiver_address: str
    receiver_phone: str
    package_weight: float
    package_dimensions: str
    service_type: ServiceType
    status: ShipmentStatus
    estimated_delivery: datetime
    cost: int
    currency: str
    payment_status: PaymentStatus
    payment_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class TrackingEventOut(BaseModel):
    id: str
    status: str
    description: str
    location: str
    timestamp: datetime

class TrackingOut(BaseModel):
    shipment: ShipmentOut
    events: List[TrackingEventOut] = []

class StatusUpdate(BaseModel):
    status: str

class StatsOut(BaseModel):
    total: int
    delivered: int
    in_transit: int
    pending: int
    total_spent: int
    recent: List[ShipmentOut] = []
