class ShipTrackError(Exception):
    """Base exception for shiptrack domain errors"""
    pass


class ValidationError(ShipTrackError):
    """Missing or invalid input fields"""
    pass


class DuplicateUserError(ShipTrackError):
    """Signup with an email that is already registered"""
    pass


class InvalidCredentialsError(ShipTrackError):
    """Login with an unknown email or a wrong password"""
    pass


class NotAuthenticatedError(ShipTrackError):
    """No active session for the request"""
    pass


class NotFoundError(ShipTrackError):
    """Record lookup miss"""
    pass


class IllegalTransitionError(ShipTrackError):
    """Shipment status change not allowed from the current status"""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move shipment from {current} to {requested}")


class PaymentFailedError(ShipTrackError):
    """Payment provider declined the charge"""
    pass


class StorageUnavailableError(ShipTrackError):
    """Persistence medium is not reachable"""
    pass


class TrackingNumberUnavailableError(ShipTrackError):
    """No unused tracking number could be generated"""
    pass
