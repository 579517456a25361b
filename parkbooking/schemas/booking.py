from datetime import date, datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"


class PaymentStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    failed = "failed"


class BookingOut(BaseModel):
    id: str
    userId: str
    parkId: str
    pricingId: str
    instanceId: str
    quantity: int
    totalPrice: int
    date: date
    startTime: str
    endTime: str
    status: str
    paymentStatus: str
    paymentId: Optional[str] = None
    paymentMethod: Optional[str] = None
    ticketCode: str
    used: bool = False
    usedAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None


class BookingStatusUpdate(BaseModel):
    status: Optional[BookingStatus] = None
    paymentStatus: Optional[PaymentStatus] = None


class QrOut(BaseModel):
    bookingId: str
    ticketCode: str
    qrCode: Optional[str] = None
