import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from fastapi.concurrency import run_in_threadpool

from shiptrack.core.errors import (
    IllegalTransitionError,
    NotFoundError,
    PaymentFailedError,
    TrackingNumberUnavailableError,
    ValidationError,
)
from shiptrack.schemas import (
    PaymentStatus,
    ServiceType,
    Shipment,
    ShipmentInput,
    ShipmentStatus,
    TrackingEvent,
    User,
)
from shiptrack.security.utils import generate_id, generate_tracking_number, now_utc
from shiptrack.services.payment import PaymentProvider
from shiptrack.store.record_store import RecordStore

logger = logging.getLogger(__name__)

BASE_RATE = 50
WEIGHT_RATE = 20

SERVICE_MULTIPLIER: Dict[ServiceType, int] = {
    ServiceType.STANDARD: 1,
    ServiceType.EXPRESS: 2,
    ServiceType.OVERNIGHT: 3,
}

DELIVERY_DAYS: Dict[ServiceType, int] = {
    ServiceType.STANDARD: 5,
    ServiceType.EXPRESS: 2,
    ServiceType.OVERNIGHT: 1,
}

# Forward chain plus cancellation from any non-terminal status.
TRANSITIONS: Dict[ShipmentStatus, FrozenSet[ShipmentStatus]] = {
    ShipmentStatus.PENDING: frozenset({ShipmentStatus.PICKED_UP, ShipmentStatus.CANCELLED}),
    ShipmentStatus.PICKED_UP: frozenset({ShipmentStatus.IN_TRANSIT, ShipmentStatus.CANCELLED}),
    ShipmentStatus.IN_TRANSIT: frozenset({ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.CANCELLED}),
    ShipmentStatus.OUT_FOR_DELIVERY: frozenset({ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED}),
    ShipmentStatus.DELIVERED: frozenset(),
    ShipmentStatus.CANCELLED: frozenset(),
}

MAX_TRACKING_NUMBER_ATTEMPTS = 5


def calculate_cost(weight: float, service_type: ServiceType) -> int:
    raw = (BASE_RATE + Decimal(str(weight)) * WEIGHT_RATE) * SERVICE_MULTIPLIER[service_type]
    return int(raw.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def estimate_delivery(created_at: datetime, service_type: ServiceType) -> datetime:
    return created_at + timedelta(days=DELIVERY_DAYS[service_type])


def describe_status(status: str, shipment: Shipment) -> Tuple[str, str]:
    """Narrative (description, location) for a tracking event."""
    status = getattr(status, 'value', status)
    if status == 'pending':
        return 'Shipment created and awaiting pickup', 'Origin facility'
    if status == 'picked_up':
        return 'Package has been picked up from sender', shipment.sender_address
    if status == 'in_transit':
        return 'Package is in transit to destination', 'Transit hub'
    if status == 'out_for_delivery':
        return 'Package is out for delivery', 'Local delivery facility'
    if status == 'delivered':
        return 'Package has been delivered successfully', shipment.receiver_address
    if status == 'cancelled':
        return 'Shipment has been cancelled', 'Origin facility'
    return 'Status updated', 'Unknown location'


def can_transition(current: ShipmentStatus, new: ShipmentStatus) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


class ShipmentLifecycle:
    def __init__(
        self,
        store: RecordStore,
        payments: PaymentProvider,
        currency: str = 'INR',
        publish: Optional[Callable[[dict], None]] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.payments = payments
        self.currency = currency
        self.publish = publish
        self.clock = clock

    def create_shipment(self, user: User, data: ShipmentInput) -> Shipment:
        """Validate the booking form and price it. The draft is not persisted."""
        if not data.sender_name.strip():
            raise ValidationError("Sender name is required")
        if not data.receiver_name.strip():
            raise ValidationError("Receiver name is required")
        if not data.package_weight or not math.isfinite(data.package_weight) or data.package_weight <= 0:
            raise ValidationError("Package weight must be greater than zero")
        try:
            service_type = ServiceType(data.service_type)
        except ValueError:
            raise ValidationError(f"Unknown service type {data.service_type!r}")

        created_at = self.clock()
        return Shipment(
            id=generate_id(),
            user_id=user.id,
            tracking_number=self._new_tracking_number(),
            sender_name=data.sender_name.strip(),
            sender_address=data.sender_address,
            sender_phone=data.sender_phone,
            receiver_name=data.receiver_name.strip(),
            receiver_address=data.receiver_address,
            receiver_phone=data.receiver_phone,
            package_weight=data.package_weight,
            package_dimensions=data.package_dimensions,
            service_type=service_type,
            status=ShipmentStatus.PENDING,
            estimated_delivery=estimate_delivery(created_at, service_type),
            cost=calculate_cost(data.package_weight, service_type),
            currency=self.currency,
            payment_status=PaymentStatus.PENDING,
            created_at=created_at,
            updated_at=created_at,
        )

    async def confirm_payment(self, draft: Shipment) -> Shipment:
        """
        Charge the draft and commit it.

        This is the only point where a shipment is written. A declined charge
        raises PaymentFailedError and leaves the draft marked `failed`; a
        cancelled await writes nothing.

        A successful receipt is kept on the draft before anything is written,
        so calling again after a storage failure finishes the commit without
        charging a second time.
        """
        stored = await run_in_threadpool(self.store.get, Shipment, draft.id)
        if stored is not None:
            if await run_in_threadpool(self._has_events, stored.id):
                raise ValidationError("Shipment has already been paid for")
            logger.warning("Resuming commit of %s without its first event", stored.tracking_number)
            return await run_in_threadpool(self._commit, stored)

        if draft.payment_status != PaymentStatus.PAID:
            receipt = await self.payments.charge(draft.cost, draft.currency, draft.tracking_number)
            if not receipt.succeeded:
                draft.payment_status = PaymentStatus.FAILED
                logger.info("Payment declined for %s", draft.tracking_number)
                raise PaymentFailedError("Payment was declined")
            draft.payment_status = PaymentStatus.PAID
            draft.payment_id = receipt.payment_id
            draft.updated_at = self.clock()
        else:
            logger.info("Draft %s already charged (%s), retrying commit", draft.tracking_number, draft.payment_id)

        return await run_in_threadpool(self._commit, draft)

    def _commit(self, shipment: Shipment) -> Shipment:
        # shipment first; the pending event marks the commit as complete
        self.store.save(shipment)
        self.record_status_change(shipment, ShipmentStatus.PENDING.value)
        logger.info("Shipment %s booked, tracking number %s", shipment.id, shipment.tracking_number)
        return shipment

    def _has_events(self, shipment_id: str) -> bool:
        return self.store.find(TrackingEvent, lambda e: e.shipment_id == shipment_id) is not None

    def record_status_change(self, shipment: Shipment, status: str) -> TrackingEvent:
        status = getattr(status, 'value', status)
        description, location = describe_status(status, shipment)
        event = TrackingEvent(
            id=generate_id(),
            shipment_id=shipment.id,
            status=status,
            description=description,
            location=location,
            timestamp=self.clock(),
        )
        self.store.save(event)
        if self.publish is not None:
            self.publish({
                'type': 'shipping.status_changed',
                'shipment_id': shipment.id,
                'user_id': shipment.user_id,
                'tracking_number': shipment.tracking_number,
                'status': status,
                'location': location,
            })
        return event

    def update_status(self, shipment_id: str, new_status: str) -> Shipment:
        shipment = self.store.get(Shipment, shipment_id)
        if shipment is None:
            raise NotFoundError("Shipment not found")
        try:
            target = ShipmentStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown shipment status {new_status!r}")
        if not can_transition(shipment.status, target):
            raise IllegalTransitionError(shipment.status.value, target.value)

        shipment.status = target
        shipment.updated_at = self.clock()
        self.store.save(shipment)
        self.record_status_change(shipment, target.value)
        logger.info("Shipment %s moved to %s", shipment.id, target.value)
        return shipment

    def cancel_shipment(self, user: User, shipment_id: str) -> Shipment:
        shipment = self.store.get(Shipment, shipment_id)
        if shipment is None or shipment.user_id != user.id:
            raise NotFoundError("Shipment not found")
        return self.update_status(shipment.id, ShipmentStatus.CANCELLED.value)

    def _new_tracking_number(self) -> str:
        for _ in range(MAX_TRACKING_NUMBER_ATTEMPTS):
            number = generate_tracking_number()
            if self.store.find(Shipment, lambda s: s.tracking_number == number) is None:
                return number
        raise TrackingNumberUnavailableError("Could not allocate a unique tracking number")
