from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shiptrack.core.config import settings
from shiptrack.core.errors import NotAuthenticatedError
from shiptrack.kafka import producer
from shiptrack.schemas import User
from shiptrack.services.drafts import DraftBook
from shiptrack.services.identity import IdentityResolver
from shiptrack.services.lifecycle import ShipmentLifecycle
from shiptrack.services.payment import MockPaymentProvider, PaymentProvider
from shiptrack.services.tracking import TrackingQuery
from shiptrack.store.record_store import RecordStore, build_store

security = HTTPBearer(auto_error=False)

_store = None
_drafts = None
_payments = None

def get_store() -> RecordStore:
    global _store
    if _store is None:
        _store = build_store(settings)
    return _store

def get_drafts() -> DraftBook:
    global _drafts
    if _drafts is None:
        _drafts = DraftBook(ttl_seconds=settings.DRAFT_TTL_SECONDS)
    return _drafts

def get_payments() -> PaymentProvider:
    global _payments
    if _payments is None:
        _payments = MockPaymentProvider(delay_seconds=settings.PAYMENT_DELAY_SECONDS)
    return _payments

def get_identity(store: RecordStore = Depends(get_store)) -> IdentityResolver:
    return IdentityResolver(store)

def get_lifecycle(store: RecordStore = Depends(get_store), payments: PaymentProvider = Depends(get_payments)) -> ShipmentLifecycle:
    publish = producer.emit if settings.KAFKA_ENABLED else None
    return ShipmentLifecycle(store, payments, currency=settings.PAYMENT_CURRENCY, publish=publish)

def get_tracking(store: RecordStore = Depends(get_store)) -> TrackingQuery:
    return TrackingQuery(store)

def get_token(creds: HTTPAuthorizationCredentials = Depends(security)) -> Optional[str]:
    return creds.credentials if creds else None

def get_current_user(token: Optional[str] = Depends(get_token), identity: IdentityResolver = Depends(get_identity)) -> User:
    if not token: raise NotAuthenticatedError('Not authenticated')
    user = identity.current_session(token)
    if not user: raise NotAuthenticatedError('Invalid or expired session')
    return user

def staff_or_internal(
    x_internal_key: Optional[str] = Header(default=None, alias="X-Internal-Key"),
    token: Optional[str] = Depends(get_token),
    identity: IdentityResolver = Depends(get_identity),
):
    # 1) allow trusted internal calls (carrier integrations)
    if x_internal_key and x_internal_key == (settings.SVC_INTERNAL_KEY or ""):
        return True

    # 2) otherwise require an admin session
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = identity.current_session(token)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin required")
    return True
