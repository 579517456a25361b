"""Cart -> bookings -> hosted checkout, and the webhook that settles it.

Booking states: pending/pending -> confirmed/paid on ``checkout.paid``; pending/pending ->
cancelled/failed on a failed, expired or canceled checkout, or when the expiry sweep runs.
A payment that lands on an already cancelled group is never dropped: expired groups are
re-confirmed when tickets remain, everything else is marked paid and flagged for a refund.
When inventory is deducted depends on ``INVENTORY_COMMIT_POLICY``.
"""
import json
import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parkbooking.core.config import settings
from parkbooking.core.errors import Conflict, GatewayError, InvalidSignature, InsufficientInventory, ValidationError
from parkbooking.core.security import Principal
from parkbooking.models.booking import Booking
from parkbooking.models.cart import Cart
from parkbooking.models.payment_event import PaymentEvent
from parkbooking.models.time_slot_instance import TimeSlotInstance
from parkbooking.models.time_slot_template import TimeSlotTemplate
from parkbooking.services import cart_service, inventory_service
from parkbooking.services.audit_service import log_audit
from parkbooking.services.booking_service import new_booking
from parkbooking.services.chargily_client import ChargilyError, verify_signature
from parkbooking.services.email_service import queue_email, booking_confirmation_body

logger = logging.getLogger(__name__)

PAID_EVENT = "checkout.paid"
FAILURE_EVENTS = ("checkout.failed", "checkout.expired", "checkout.canceled")


def _check_still_bookable(db: Session, items, labels: dict[str, str], today: date):
    """A cart can sit for days; its slots must still be offered and not in the past."""
    for it in items:
        label = labels[it.time_slot_instance_id]
        inst = db.get(TimeSlotInstance, it.time_slot_instance_id)
        template = db.get(TimeSlotTemplate, inst.template_id) if inst else None
        if not inst or not template or not template.active:
            raise Conflict(f"Time slot {label} is no longer offered; remove it from the cart")
        if inst.date < today:
            raise Conflict(f"Time slot {label} is in the past; remove it from the cart")


def create_checkout(db: Session, principal: Principal, gateway, policy: str | None = None,
                    today: date | None = None) -> dict:
    """Turn the pending cart into pending bookings and open a gateway checkout for their total.

    Nothing is persisted unless the gateway returns a session.
    """
    policy = policy or settings.INVENTORY_COMMIT_POLICY
    today = today or date.today()
    cart = cart_service.get_pending_cart(db, principal.id)
    items = cart_service.cart_items(db, cart.id) if cart else []
    if not items:
        raise Conflict("Cart is empty")

    try:
        demand: dict[str, int] = defaultdict(int)
        labels = {}
        for it in items:
            demand[it.time_slot_instance_id] += it.quantity
            labels.setdefault(it.time_slot_instance_id, f"{it.date.isoformat()} {it.start_time}-{it.end_time}")
        _check_still_bookable(db, items, labels, today)
        instances = inventory_service.lock_instances(db, demand.keys())
        inventory_service.check_demand(instances, demand, labels)

        bookings = [new_booking(db, principal, it) for it in items]
        if policy == "on_checkout":
            for b in bookings:
                inventory_service.reserve(db, b, instances[b.time_slot_instance_id])

        total = sum(it.total_price for it in items)
        try:
            session = gateway.create_checkout_session(
                amount_minor=total * 100,
                currency=settings.CHARGILY_CURRENCY,
                success_url=f"{settings.CLIENT_BASE_URL.rstrip('/')}/payment-success",
            )
        except ChargilyError as e:
            raise GatewayError(f"Payment provider error: {e}") from e

        for b in bookings:
            b.payment_id = session["id"]
        log_audit(db, principal.id, "checkout.create", "cart", cart.id,
                  {"payment_id": session["id"], "total": total, "bookings": [b.id for b in bookings], "policy": policy})
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Checkout %s opened for user %s: %s bookings, total %s", session["id"], principal.id, len(bookings), total)
    return {"id": session["id"], "checkout_url": session["checkout_url"], "total": total, "bookings": bookings}


def _lock_unsettled_group(db: Session, payment_id: str) -> list[Booking]:
    """Bookings still waiting on this payment, including ones an admin confirmed ahead of it."""
    return db.execute(
        select(Booking)
        .where(Booking.payment_id == payment_id, Booking.status != "cancelled", Booking.payment_status == "pending")
        .order_by(Booking.id)
        .with_for_update()
    ).scalars().all()


def _lock_lapsed_group(db: Session, payment_id: str) -> list[Booking]:
    """Cancelled bookings of this payment that were never marked paid."""
    return db.execute(
        select(Booking)
        .where(Booking.payment_id == payment_id, Booking.status == "cancelled",
               Booking.payment_status.in_(("pending", "failed")))
        .order_by(Booking.id)
        .with_for_update()
    ).scalars().all()


def _set_cart_status(db: Session, bookings: list[Booking], status: str):
    for cart_id in {b.cart_id for b in bookings if b.cart_id}:
        cart = db.get(Cart, cart_id)
        if cart and cart.status == "pending":
            cart.status = status


def _confirm_group(db: Session, bookings: list[Booking], data: dict) -> str:
    try:
        inventory_service.reserve_group(db, bookings)
    except InsufficientInventory as e:
        # paid but nothing left: refund by hand; counters stay within bounds
        for b in bookings:
            b.status = "cancelled"
            b.payment_status = "paid"
            b.payment_method = data.get("payment_method")
            b.currency = data.get("currency")
        log_audit(db, "system", "payment.oversold", "booking", bookings[0].id,
                  {"payment_id": bookings[0].payment_id, "bookings": [b.id for b in bookings], "reason": e.message})
        logger.error("Payment %s confirmed but inventory exhausted (%s); %s bookings need a refund",
                     bookings[0].payment_id, e.message, len(bookings))
        return "oversold"

    for b in bookings:
        b.status = "confirmed"
        b.payment_status = "paid"
        b.payment_method = data.get("payment_method")
        b.currency = data.get("currency")
    _set_cart_status(db, bookings, "completed")
    by_email = defaultdict(list)
    for b in bookings:
        by_email[b.contact_email].append(b)
    for email, group in by_email.items():
        queue_email(db, email, "Your park tickets", booking_confirmation_body(group), related_booking_id=group[0].id)
    return "confirmed"


def _settle_late_payment(db: Session, bookings: list[Booking], data: dict) -> str:
    """Money arrived for a group that was already cancelled.

    Groups the expiry sweep or a failure event closed (``cancelled/failed``) are confirmed again
    when their tickets are still free. Groups cancelled by the customer or an admin, and expired
    groups whose tickets are gone, are kept cancelled, marked paid and flagged for a refund.
    """
    payment_id = bookings[0].payment_id
    log_audit(db, "system", "payment.late", "booking", bookings[0].id,
              {"payment_id": payment_id, "bookings": [b.id for b in bookings],
               "previous": sorted({f"{b.status}/{b.payment_status}" for b in bookings})})
    if all(b.payment_status == "failed" for b in bookings):
        outcome = _confirm_group(db, bookings, data)
        if outcome == "confirmed":
            logger.warning("Late payment %s re-confirmed %s expired bookings", payment_id, len(bookings))
            return "late_confirmed"
        return outcome

    for b in bookings:
        b.payment_status = "paid"
        b.payment_method = data.get("payment_method")
        b.currency = data.get("currency")
    log_audit(db, "system", "payment.refund_due", "booking", bookings[0].id,
              {"payment_id": payment_id, "bookings": [b.id for b in bookings]})
    logger.error("Payment %s arrived for %s cancelled bookings; refund by hand", payment_id, len(bookings))
    return "refund_due"


def _fail_group(db: Session, bookings: list[Booking]) -> str:
    for b in bookings:
        if b.used:
            # already admitted at the gate; only the payment outcome is recorded
            b.payment_status = "failed"
            logger.warning("Payment %s failed for used ticket %s", b.payment_id, b.ticket_code)
            continue
        inventory_service.release(db, b)
        b.status = "cancelled"
        b.payment_status = "failed"
    _set_cart_status(db, bookings, "cancelled")
    return "failed"


def handle_webhook(db: Session, body: bytes, signature: str | None) -> dict:
    """Apply a signed gateway event. Replays and unknown payments are acknowledged without effect."""
    if not verify_signature(settings.CHARGILY_API_KEY, body, signature):
        raise InvalidSignature("Invalid signature")
    try:
        event = json.loads(body)
    except ValueError:
        raise ValidationError("Malformed webhook payload")
    if not isinstance(event, dict):
        raise ValidationError("Malformed webhook payload")
    event_type = str(event.get("type") or "")
    data = event.get("data") if isinstance(event.get("data"), dict) else {}
    payment_id = data.get("id")
    if not payment_id:
        raise ValidationError("Webhook payload has no checkout id")
    event_id = str(event.get("id") or f"{event_type}:{payment_id}")

    if db.execute(select(PaymentEvent.id).where(PaymentEvent.event_id == event_id)).first():
        logger.info("Webhook event %s already processed", event_id)
        return {"status": "duplicate", "eventId": event_id}

    try:
        bookings = []
        outcome = "no_pending"
        if event_type == PAID_EVENT:
            bookings = _lock_unsettled_group(db, payment_id)
            if bookings:
                outcome = _confirm_group(db, bookings, data)
            else:
                bookings = _lock_lapsed_group(db, payment_id)
                if bookings:
                    outcome = _settle_late_payment(db, bookings, data)
        elif event_type in FAILURE_EVENTS:
            bookings = _lock_unsettled_group(db, payment_id)
            if bookings:
                outcome = _fail_group(db, bookings)
        else:
            outcome = "ignored"
            logger.info("Ignoring webhook event type %s", event_type)
        if outcome == "no_pending":
            logger.warning("Webhook %s for payment %s matched no pending bookings", event_type, payment_id)

        db.add(PaymentEvent(
            id=str(uuid.uuid4()),
            event_id=event_id,
            event_type=event_type,
            payment_id=payment_id,
            outcome=outcome,
        ))
        db.commit()
    except IntegrityError:
        # same event committed concurrently
        db.rollback()
        return {"status": "duplicate", "eventId": event_id}
    except Exception:
        db.rollback()
        raise

    logger.info("Webhook %s (%s) for payment %s: %s", event_id, event_type, payment_id, outcome)
    return {"status": outcome, "eventId": event_id, "bookings": len(bookings)}


def expire_pending_checkouts(db: Session, now: datetime | None = None) -> dict:
    """Cancel checkouts never settled within CHECKOUT_EXPIRY_MINUTES and give back any held tickets."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=settings.CHECKOUT_EXPIRY_MINUTES)
    expired = db.execute(
        select(Booking)
        .where(Booking.status == "pending", Booking.payment_status == "pending", Booking.created_at < cutoff)
        .order_by(Booking.id)
        .with_for_update()
    ).scalars().all()
    for b in expired:
        inventory_service.release(db, b)
        b.status = "cancelled"
        b.payment_status = "failed"
        log_audit(db, "system", "booking.expire", "booking", b.id, {"payment_id": b.payment_id})
    db.commit()
    if expired:
        logger.info("Expired %s unpaid bookings", len(expired))
    return {"expired": len(expired)}
