from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field


class TemplateCreate(BaseModel):
    pricingIds: List[str]
    daysOfWeek: List[int]  # 0=Sunday .. 6=Saturday
    startTime: str  # HH:MM
    endTime: str    # HH:MM; "00:00" means midnight
    ticketLimit: int = Field(ge=1)
    priceAdjustment: int = 0
    validFrom: date
    validUntil: Optional[date] = None

    def to_rule(self) -> dict:
        return {
            "pricing_ids": self.pricingIds,
            "days_of_week": self.daysOfWeek,
            "start_time": self.startTime,
            "end_time": self.endTime,
            "ticket_limit": self.ticketLimit,
            "price_adjustment": self.priceAdjustment,
            "valid_from": self.validFrom,
            "valid_until": self.validUntil,
        }


class TemplateUpdate(BaseModel):
    pricingIds: Optional[List[str]] = None
    daysOfWeek: Optional[List[int]] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    ticketLimit: Optional[int] = None
    priceAdjustment: Optional[int] = None
    validFrom: Optional[date] = None
    validUntil: Optional[date] = None

    def to_patch(self) -> dict:
        names = {
            "pricingIds": "pricing_ids", "daysOfWeek": "days_of_week", "startTime": "start_time",
            "endTime": "end_time", "ticketLimit": "ticket_limit", "priceAdjustment": "price_adjustment",
            "validFrom": "valid_from", "validUntil": "valid_until",
        }
        return {names[k]: v for k, v in self.model_dump(exclude_unset=True).items()}


class TemplateOut(BaseModel):
    id: str
    parkId: str
    pricingIds: List[str]
    daysOfWeek: List[int]
    startTime: str
    endTime: str
    ticketLimit: int
    priceAdjustment: int = 0
    validFrom: date
    validUntil: Optional[date] = None
    active: bool = True


class OverlapCheck(BaseModel):
    parkId: str
    pricingIds: List[str]
    daysOfWeek: List[int]
    startTime: str
    endTime: str
    validFrom: date
    validUntil: Optional[date] = None
    excludeTemplateId: Optional[str] = None


class OverlapOut(BaseModel):
    hasOverlap: bool
    conflicts: List[TemplateOut] = []
    newSlot: dict


class InstanceOut(BaseModel):
    id: str
    templateId: str
    parkId: Optional[str] = None
    date: date
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    ticketLimit: int
    availableTickets: int


class InstanceUpdate(BaseModel):
    availableTickets: int


class SlotPricing(BaseModel):
    id: str
    name: str
    unitPrice: int


class AvailabilityOut(BaseModel):
    instanceId: str
    templateId: str
    date: date
    startTime: str
    endTime: str
    ticketLimit: int
    availableTickets: int
    priceAdjustment: int = 0
    pricings: List[SlotPricing] = []


class TemplateDeleteOut(BaseModel):
    id: str
    result: str  # deleted | archived
    instancesRemoved: int = 0
