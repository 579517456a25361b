import logging
import uuid
from datetime import date, timedelta

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from parkbooking.core.errors import ValidationError, NotFound, InsufficientInventory
from parkbooking.models.cart import Cart, CartItem
from parkbooking.models.park import Park
from parkbooking.models.pricing import Pricing
from parkbooking.models.time_slot_instance import TimeSlotInstance
from parkbooking.models.time_slot_template import TimeSlotTemplate
from parkbooking.services.time_slot_service import unit_price

logger = logging.getLogger(__name__)


def get_pending_cart(db: Session, user_id: str) -> Cart | None:
    return db.execute(
        select(Cart).where(Cart.user_id == user_id, Cart.status == "pending")
    ).scalar_one_or_none()


def get_or_create_pending_cart(db: Session, user_id: str) -> Cart:
    cart = get_pending_cart(db, user_id)
    if cart:
        return cart
    cart = Cart(id=str(uuid.uuid4()), user_id=user_id, status="pending")
    db.add(cart)
    db.flush()
    return cart


def cart_items(db: Session, cart_id: str) -> list[CartItem]:
    return db.execute(
        select(CartItem).where(CartItem.cart_id == cart_id).order_by(CartItem.position, CartItem.id)
    ).scalars().all()


def _resolve_line(db: Session, pricing_id: str, instance_id: str, today: date):
    """Look up and validate what a cart line points at. Returns (pricing, instance, template)."""
    if not pricing_id or not instance_id:
        raise ValidationError("pricing_id and instance_id are required")
    pricing = db.get(Pricing, pricing_id)
    if not pricing:
        raise ValidationError("Unknown pricing")
    inst = db.get(TimeSlotInstance, instance_id)
    if not inst:
        raise ValidationError("Unknown time slot")
    template = db.get(TimeSlotTemplate, inst.template_id)
    if not template or not template.active:
        raise ValidationError("Time slot is no longer offered")
    if pricing.id not in template.pricing_id_list:
        raise ValidationError("Pricing is not offered for this time slot")
    if inst.date < today:
        raise ValidationError("Cannot book a date in the past")
    park = db.get(Park, template.park_id)
    max_days = park.max_booking_days if park and park.max_booking_days is not None else 30
    if inst.date > today + timedelta(days=max_days):
        raise ValidationError(f"Bookings are open at most {max_days} days ahead")
    return pricing, inst, template


def _soft_check(inst: TimeSlotInstance, template: TimeSlotTemplate, quantity: int):
    # tickets are not held by a cart; checkout re-checks under the row lock
    if quantity > inst.available_tickets:
        raise InsufficientInventory(
            f"Only {inst.available_tickets} tickets left for {inst.date.isoformat()} "
            f"{template.start_time}-{template.end_time}",
            instance_id=inst.id,
        )


def _check_quantity(quantity) -> int:
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer")
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")
    return quantity


def _next_position(db: Session, cart_id: str) -> int:
    current = db.execute(select(func.max(CartItem.position)).where(CartItem.cart_id == cart_id)).scalar_one()
    return 0 if current is None else current + 1


def _new_item(cart: Cart, position: int, pricing: Pricing, inst: TimeSlotInstance,
              template: TimeSlotTemplate, quantity: int) -> CartItem:
    price = unit_price(pricing, template)
    return CartItem(
        id=str(uuid.uuid4()),
        cart_id=cart.id,
        position=position,
        park_id=template.park_id,
        pricing_id=pricing.id,
        pricing_name=pricing.name,
        time_slot_instance_id=inst.id,
        quantity=quantity,
        unit_price=price,
        total_price=price * quantity,
        date=inst.date,
        start_time=template.start_time,
        end_time=template.end_time,
    )


def add_to_cart(db: Session, user_id: str, pricing_id: str, instance_id: str, quantity: int,
                today: date | None = None) -> Cart:
    """Append a line to the user's pending cart, merging with an identical one."""
    today = today or date.today()
    quantity = _check_quantity(quantity)
    pricing, inst, template = _resolve_line(db, pricing_id, instance_id, today)
    try:
        cart = get_or_create_pending_cart(db, user_id)
        existing = db.execute(
            select(CartItem).where(
                CartItem.cart_id == cart.id,
                CartItem.pricing_id == pricing.id,
                CartItem.time_slot_instance_id == inst.id,
            )
        ).scalar_one_or_none()
        if existing:
            merged = existing.quantity + quantity
            _soft_check(inst, template, merged)
            existing.quantity = merged
            existing.total_price = existing.unit_price * merged
        else:
            _soft_check(inst, template, quantity)
            db.add(_new_item(cart, _next_position(db, cart.id), pricing, inst, template, quantity))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(cart)
    return cart


def _get_item(db: Session, user_id: str, item_id: str) -> CartItem:
    cart = get_pending_cart(db, user_id)
    item = db.get(CartItem, item_id)
    if not cart or not item or item.cart_id != cart.id:
        raise NotFound("Cart item not found")
    return item


def update_cart_item(db: Session, user_id: str, item_id: str, quantity: int) -> CartItem:
    quantity = _check_quantity(quantity)
    item = _get_item(db, user_id, item_id)
    inst = db.get(TimeSlotInstance, item.time_slot_instance_id)
    if not inst:
        raise ValidationError("Time slot no longer exists")
    template = db.get(TimeSlotTemplate, inst.template_id)
    _soft_check(inst, template, quantity)
    item.quantity = quantity
    item.total_price = item.unit_price * quantity
    db.commit()
    db.refresh(item)
    return item


def remove_cart_items(db: Session, user_id: str, item_ids: list[str]) -> int:
    if not item_ids:
        raise ValidationError("item_ids must not be empty")
    cart = get_pending_cart(db, user_id)
    if not cart:
        raise NotFound("Cart not found")
    items = db.execute(
        select(CartItem).where(CartItem.cart_id == cart.id, CartItem.id.in_(item_ids))
    ).scalars().all()
    if not items:
        raise NotFound("Cart item not found")
    for it in items:
        db.delete(it)
    db.commit()
    return len(items)


def clear_cart(db: Session, user_id: str) -> int:
    cart = get_pending_cart(db, user_id)
    if not cart:
        return 0
    items = cart_items(db, cart.id)
    for it in items:
        db.delete(it)
    db.commit()
    return len(items)


def sync_cart(db: Session, user_id: str, items: list[dict], today: date | None = None) -> Cart:
    """Replace the server lines with a client-held cart. Prices are always recomputed here."""
    today = today or date.today()
    resolved = []
    merged: dict[tuple[str, str], int] = {}
    for raw in items:
        qty = _check_quantity(raw.get("quantity"))
        pricing, inst, template = _resolve_line(db, raw.get("pricing_id"), raw.get("instance_id"), today)
        key = (pricing.id, inst.id)
        if key not in merged:
            resolved.append((pricing, inst, template))
            merged[key] = 0
        merged[key] += qty
    for pricing, inst, template in resolved:
        _soft_check(inst, template, merged[(pricing.id, inst.id)])
    try:
        cart = get_or_create_pending_cart(db, user_id)
        for it in cart_items(db, cart.id):
            db.delete(it)
        db.flush()
        for pos, (pricing, inst, template) in enumerate(resolved):
            db.add(_new_item(cart, pos, pricing, inst, template, merged[(pricing.id, inst.id)]))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(cart)
    logger.info("Cart %s synced with %s lines for user %s", cart.id, len(resolved), user_id)
    return cart


def cart_summary(db: Session, cart: Cart | None) -> dict:
    if not cart:
        return {"id": None, "status": None, "items": [], "totalAmount": 0, "totalItems": 0}
    items = cart_items(db, cart.id)
    return {
        "id": cart.id,
        "status": cart.status,
        "items": items,
        "totalAmount": sum(i.total_price for i in items),
        "totalItems": sum(i.quantity for i in items),
    }


def get_cart(db: Session, user_id: str) -> dict:
    return cart_summary(db, get_pending_cart(db, user_id))


def get_cart_for_user(db: Session, user_id: str) -> dict:
    """Admin view of another user's pending cart."""
    cart = get_pending_cart(db, user_id)
    if not cart:
        raise NotFound("Cart not found")
    return cart_summary(db, cart)
