from datetime import date
from typing import List, Optional
from pydantic import BaseModel


class CartAdd(BaseModel):
    pricingId: str
    instanceId: str
    quantity: int = 1


class CartItemUpdate(BaseModel):
    quantity: int


class CartRemove(BaseModel):
    itemIds: List[str]


class CartSyncItem(BaseModel):
    pricingId: str
    instanceId: str
    quantity: int = 1
    # client-held prices are accepted but never trusted
    unitPrice: Optional[int] = None
    totalPrice: Optional[int] = None


class CartSync(BaseModel):
    items: List[CartSyncItem] = []


class CartItemOut(BaseModel):
    id: str
    parkId: str
    pricingId: str
    pricingName: str = ""
    instanceId: str
    quantity: int
    unitPrice: int
    totalPrice: int
    date: date
    startTime: str
    endTime: str


class CartOut(BaseModel):
    id: Optional[str] = None
    userId: str
    status: Optional[str] = None
    items: List[CartItemOut] = []
    totalAmount: int = 0
    totalItems: int = 0
