from pydantic import BaseModel, Field
from typing import ClassVar, Optional
from datetime import datetime
from enum import Enum

class ServiceType(str, Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"

class ShipmentStatus(str, Enum):
    PENDING = "pending"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

class Record(BaseModel):
    """Base for everything kept in the record store; `kind` names the collection."""
    kind: ClassVar[str]
    id: str

class User(Record):
    kind: ClassVar[str] = 'users'
    email: str
    full_name: str
    phone: str = ''
    password_hash: str
    role: str = 'customer'
    created_at: datetime

class Session(Record):
    kind: ClassVar[str] = 'sessions'
    user_id: str
    created_at: datetime
    expires_at: datetime
    revoked: bool = False

class Shipment(Record):
    kind: ClassVar[str] = 'shipments'
    user_id: str
    tracking_number: str
    sender_name: str
    sender_address: str = ''
    sender_phone: str = ''
    receiver_name: str
    receiver_address: str = ''
    receiver_phone: str = ''
    package_weight: float = Field(gt=0)
    package_dimensions: str = ''
    service_type: ServiceType
    status: ShipmentStatus = ShipmentStatus.PENDING
    estimated_delivery: datetime
    cost: int
    currency: str = 'INR'
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class TrackingEvent(Record):
    kind: ClassVar[str] = 'tracking_events'
    shipment_id: str
    status: str
    description: str
    location: str
    timestamp: datetime

class ShipmentInput(BaseModel):
    """Booking form contents; checked by the lifecycle engine, not here."""
    sender_name: str = ''
    sender_address: str = ''
    sender_phone: str = ''
    receiver_name: str = ''
    receiver_address: str = ''
    receiver_phone: str = ''
    package_weight: float = 0
    package_dimensions: str = ''
    service_type: str = ServiceType.STANDARD.value

RECORD_TYPES = (User, Session, Shipment, TrackingEvent)
