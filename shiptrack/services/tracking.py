from typing import List, Optional

from pydantic import BaseModel

from shiptrack.core.errors import NotFoundError
from shiptrack.schemas import Shipment, ShipmentStatus, TrackingEvent
from shiptrack.store.record_store import RecordStore

RECENT_SHIPMENTS = 5


class TrackingResult(BaseModel):
    shipment: Shipment
    events: List[TrackingEvent]


class DashboardStats(BaseModel):
    total: int
    delivered: int
    in_transit: int
    pending: int
    total_spent: int
    recent: List[Shipment]


class TrackingQuery:
    """Read-only lookups over shipments and their tracking history."""

    def __init__(self, store: RecordStore):
        self.store = store

    def track_by_number(self, tracking_number: str) -> TrackingResult:
        shipment = self.store.find(Shipment, lambda s: s.tracking_number == tracking_number)
        if shipment is None:
            raise NotFoundError("Tracking number not found")
        return TrackingResult(shipment=shipment, events=self.events_for(shipment.id))

    def events_for(self, shipment_id: str) -> List[TrackingEvent]:
        events = [e for e in self.store.list(TrackingEvent) if e.shipment_id == shipment_id]
        # stable sort: equal timestamps keep most-recently-saved first
        return sorted(events, key=lambda e: e.timestamp, reverse=True)

    def shipments_for(self, user_id: str, search: Optional[str] = None, status: Optional[str] = None) -> List[Shipment]:
        shipments = [s for s in self.store.list(Shipment) if s.user_id == user_id]
        if status:
            shipments = [s for s in shipments if s.status.value == status]
        if search:
            needle = search.lower()
            shipments = [
                s for s in shipments
                if needle in s.tracking_number.lower()
                or needle in s.receiver_name.lower()
                or needle in s.sender_name.lower()
            ]
        return shipments

    def dashboard_stats(self, user_id: str) -> DashboardStats:
        shipments = self.shipments_for(user_id)

        def count(status: ShipmentStatus) -> int:
            return sum(1 for s in shipments if s.status == status)

        return DashboardStats(
            total=len(shipments),
            delivered=count(ShipmentStatus.DELIVERED),
            in_transit=count(ShipmentStatus.IN_TRANSIT),
            pending=count(ShipmentStatus.PENDING),
            total_spent=sum(s.cost for s in shipments),
            recent=shipments[:RECENT_SHIPMENTS],
        )
