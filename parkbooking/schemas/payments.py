from typing import List, Optional
from pydantic import BaseModel

from parkbooking.schemas.booking import BookingOut


class CheckoutOut(BaseModel):
    id: str
    checkout_url: str
    total: int = 0


class CheckoutWithBookingsOut(CheckoutOut):
    bookings: List[BookingOut] = []


class WebhookAck(BaseModel):
    status: str
    eventId: Optional[str] = None
    bookings: int = 0
