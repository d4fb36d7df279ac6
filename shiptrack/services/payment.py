import asyncio
import logging

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class PaymentReceipt(BaseModel):
    payment_id: str
    status: str  # "succeeded" | "declined"
    amount: int
    currency: str

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


class PaymentProvider:
    """Charges a shipment; a real gateway client would subclass this."""

    async def charge(self, amount: int, currency: str, reference: str) -> PaymentReceipt:
        raise NotImplementedError


class MockPaymentProvider(PaymentProvider):
    """Waits `delay_seconds` and approves (or declines) every charge."""

    def __init__(self, delay_seconds: float = 3.0, decline: bool = False):
        self.delay_seconds = delay_seconds
        self.decline = decline

    async def charge(self, amount: int, currency: str, reference: str) -> PaymentReceipt:
        logger.info("Charging %s %s for %s", amount, currency, reference)
        await asyncio.sleep(self.delay_seconds)
        return PaymentReceipt(
            payment_id=f"pay_{reference}",
            status="declined" if self.decline else "succeeded",
            amount=amount,
            currency=currency,
        )
