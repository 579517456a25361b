from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from parkbooking.db.session import get_db
from parkbooking.api.deps import get_principal, require_roles
from parkbooking.core.security import Principal
from parkbooking.models.cart import CartItem
from parkbooking.schemas.cart import CartAdd, CartItemUpdate, CartRemove, CartSync, CartItemOut, CartOut
from parkbooking.services import cart_service

router = APIRouter(prefix="/cart", tags=["cart"])


def _item_out(it: CartItem) -> CartItemOut:
    return CartItemOut(
        id=it.id,
        parkId=it.park_id,
        pricingId=it.pricing_id,
        pricingName=it.pricing_name or "",
        instanceId=it.time_slot_instance_id,
        quantity=it.quantity,
        unitPrice=it.unit_price,
        totalPrice=it.total_price,
        date=it.date,
        startTime=it.start_time,
        endTime=it.end_time,
    )


def _cart_out(user_id: str, summary: dict) -> CartOut:
    return CartOut(
        id=summary["id"],
        userId=user_id,
        status=summary["status"],
        items=[_item_out(i) for i in summary["items"]],
        totalAmount=summary["totalAmount"],
        totalItems=summary["totalItems"],
    )


@router.post("/add", response_model=CartOut)
def add_to_cart(body: CartAdd, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    cart = cart_service.add_to_cart(db, principal.id, body.pricingId, body.instanceId, body.quantity)
    return _cart_out(principal.id, cart_service.cart_summary(db, cart))


@router.get("", response_model=CartOut)
def get_cart(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return _cart_out(principal.id, cart_service.get_cart(db, principal.id))


@router.post("/sync", response_model=CartOut)
def sync_cart(body: CartSync, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    items = [{"pricing_id": i.pricingId, "instance_id": i.instanceId, "quantity": i.quantity} for i in body.items]
    cart = cart_service.sync_cart(db, principal.id, items)
    return _cart_out(principal.id, cart_service.cart_summary(db, cart))


@router.get("/get-by-id/{user_id}", response_model=CartOut)
def get_cart_by_user(user_id: str, db: Session = Depends(get_db),
                     principal: Principal = Depends(require_roles("admin"))):
    return _cart_out(user_id, cart_service.get_cart_for_user(db, user_id))


@router.put("/items/{item_id}", response_model=CartOut)
def update_item(item_id: str, body: CartItemUpdate, db: Session = Depends(get_db),
                principal: Principal = Depends(get_principal)):
    cart_service.update_cart_item(db, principal.id, item_id, body.quantity)
    return _cart_out(principal.id, cart_service.get_cart(db, principal.id))


@router.delete("/items/remove", response_model=CartOut)
def remove_items(body: CartRemove, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    cart_service.remove_cart_items(db, principal.id, body.itemIds)
    return _cart_out(principal.id, cart_service.get_cart(db, principal.id))


@router.delete("/clear", response_model=CartOut)
def clear_cart(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    cart_service.clear_cart(db, principal.id)
    return _cart_out(principal.id, cart_service.get_cart(db, principal.id))
