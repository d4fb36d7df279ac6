import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from shiptrack.api.deps import (
    get_current_user,
    get_drafts,
    get_lifecycle,
    get_tracking,
    staff_or_internal,
)
from shiptrack.api.v1.schemas import CreateShipment, ShipmentOut, StatsOut, StatusUpdate, TrackingEventOut, TrackingOut
from shiptrack.core.errors import PaymentFailedError, StorageUnavailableError
from shiptrack.schemas import Shipment, ShipmentInput, User
from shiptrack.services.drafts import DraftBook
from shiptrack.services.lifecycle import ShipmentLifecycle
from shiptrack.services.tracking import TrackingQuery, TrackingResult

router = APIRouter()


def _out(shp: Shipment) -> ShipmentOut:
    return ShipmentOut(**shp.model_dump())


def _tracking_out(result: TrackingResult) -> TrackingOut:
    return TrackingOut(
        shipment=_out(result.shipment),
        events=[TrackingEventOut(**e.model_dump()) for e in result.events],
    )


@router.post("/shipping/v1/shipments/drafts", response_model=ShipmentOut, status_code=201)
def create_draft(
    payload: CreateShipment,
    user: User = Depends(get_current_user),
    lifecycle: ShipmentLifecycle = Depends(get_lifecycle),
    drafts: DraftBook = Depends(get_drafts),
):
    draft = lifecycle.create_shipment(user, ShipmentInput(**payload.model_dump()))
    drafts.put(draft)
    return _out(draft)


@router.delete("/shipping/v1/shipments/drafts/{draft_id}")
def discard_draft(draft_id: str, user: User = Depends(get_current_user), drafts: DraftBook = Depends(get_drafts)):
    drafts.discard(draft_id, user.id)
    return {"status": "ok"}


@router.post("/shipping/v1/shipments/drafts/{draft_id}/pay", response_model=ShipmentOut, status_code=201)
async def pay_draft(
    draft_id: str,
    user: User = Depends(get_current_user),
    lifecycle: ShipmentLifecycle = Depends(get_lifecycle),
    drafts: DraftBook = Depends(get_drafts),
):
    draft = drafts.take(draft_id, user.id)
    try:
        shipment = await lifecycle.confirm_payment(draft)
    except (PaymentFailedError, StorageUnavailableError, asyncio.CancelledError):
        # keep the draft, with any receipt it now carries, for a retry or discard
        drafts.put(draft)
        raise
    return _out(shipment)


@router.get("/shipping/v1/shipments", response_model=List[ShipmentOut])
def list_shipments(
    q: Optional[str] = None,
    status: Optional[str] = None,
    user: User = Depends(get_current_user),
    tracking: TrackingQuery = Depends(get_tracking),
):
    return [_out(s) for s in tracking.shipments_for(user.id, search=q, status=status)]


@router.get("/shipping/v1/shipments/stats", response_model=StatsOut)
def shipment_stats(user: User = Depends(get_current_user), tracking: TrackingQuery = Depends(get_tracking)):
    stats = tracking.dashboard_stats(user.id)
    data = stats.model_dump(exclude={"recent"})
    return StatsOut(**data, recent=[_out(s) for s in stats.recent])


@router.get("/shipping/v1/shipments/{shipment_id}", response_model=TrackingOut)
def get_shipment(shipment_id: str, user: User = Depends(get_current_user), tracking: TrackingQuery = Depends(get_tracking)):
    shp = tracking.store.get(Shipment, shipment_id)
    if not shp or shp.user_id != user.id:
        raise HTTPException(404, "Not found")
    return TrackingOut(
        shipment=_out(shp),
        events=[TrackingEventOut(**e.model_dump()) for e in tracking.events_for(shp.id)],
    )


@router.post("/shipping/v1/shipments/{shipment_id}/cancel", response_model=ShipmentOut)
def cancel_shipment(shipment_id: str, user: User = Depends(get_current_user), lifecycle: ShipmentLifecycle = Depends(get_lifecycle)):
    return _out(lifecycle.cancel_shipment(user, shipment_id))


@router.post("/shipping/v1/shipments/{shipment_id}/status", response_model=ShipmentOut)
def update_status(
    shipment_id: str,
    payload: StatusUpdate,
    _=Depends(staff_or_internal),
    lifecycle: ShipmentLifecycle = Depends(get_lifecycle),
):
    return _out(lifecycle.update_status(shipment_id, payload.status))


@router.get("/shipping/v1/track/{tracking_number}", response_model=TrackingOut)
def track(tracking_number: str, tracking: TrackingQuery = Depends(get_tracking)):
    return _tracking_out(tracking.track_by_number(tracking_number))
