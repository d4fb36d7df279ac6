# main.py
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shiptrack.version import VERSION
from shiptrack.core.config import settings
from shiptrack.core.errors import (
    DuplicateUserError,
    IllegalTransitionError,
    InvalidCredentialsError,
    NotAuthenticatedError,
    NotFoundError,
    PaymentFailedError,
    ShipTrackError,
    StorageUnavailableError,
    TrackingNumberUnavailableError,
    ValidationError,
)
from shiptrack.api.v1 import routes_auth, routes_shipments
from shiptrack.kafka import producer

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("shiptrack")

ERROR_STATUS = {
    ValidationError: 422,
    DuplicateUserError: status.HTTP_409_CONFLICT,
    InvalidCredentialsError: status.HTTP_401_UNAUTHORIZED,
    NotAuthenticatedError: status.HTTP_401_UNAUTHORIZED,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    IllegalTransitionError: status.HTTP_409_CONFLICT,
    PaymentFailedError: status.HTTP_402_PAYMENT_REQUIRED,
    StorageUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    TrackingNumberUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title='ShipTrack Service', version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)


@app.exception_handler(ShipTrackError)
async def shiptrack_error_handler(request: Request, exc: ShipTrackError):
    code = next((c for t, c in ERROR_STATUS.items() if isinstance(exc, t)), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if code >= 500:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.get('/health')
def health(): return {'status':'ok'}

@app.get('/v1/_info')
def info(): return {'service':'shiptrack','version':VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("%s %s", sorted(route.methods), route.path)

@app.on_event("shutdown")
async def shutdown_event():
    producer.close()

app.include_router(routes_auth.router, prefix='/auth', tags=['auth'])
app.include_router(routes_shipments.router, tags=['shipments'])
