"""Booking ledger: lookups, cancellation, ticket consumption and admin status changes."""
import logging
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from parkbooking.core.errors import NotFound, Forbidden, InvariantViolation, ValidationError
from parkbooking.core.security import Principal
from parkbooking.models.booking import Booking
from parkbooking.models.cart import CartItem
from parkbooking.services import inventory_service, qr_service
from parkbooking.services.audit_service import log_audit

logger = logging.getLogger(__name__)

STATUSES = ("pending", "confirmed", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed")
# legacy spelling kept by older clients for a confirmed booking
USABLE_STATUSES = ("confirmed", "paid")


def allocate_ticket_code(db: Session) -> str:
    # ticket_code must be unique
    for _ in range(10):
        code = qr_service.make_ticket_code()
        exists = db.query(Booking).filter(Booking.ticket_code == code).first()
        if not exists:
            return code
    raise RuntimeError("could not allocate ticket code")


def new_booking(db: Session, principal: Principal, item: CartItem) -> Booking:
    """Build a pending booking for one cart line, with its ticket code and QR image."""
    booking_id = str(uuid.uuid4())
    booking = Booking(
        id=booking_id,
        user_id=principal.id,
        contact_email=principal.email or "",
        park_id=item.park_id,
        pricing_id=item.pricing_id,
        time_slot_instance_id=item.time_slot_instance_id,
        cart_id=item.cart_id,
        quantity=item.quantity,
        total_price=item.total_price,
        date=item.date,
        start_time=item.start_time,
        end_time=item.end_time,
        status="pending",
        payment_status="pending",
        ticket_code=allocate_ticket_code(db),
        qr_code=qr_service.encode(
            qr_service.booking_qr_payload(booking_id, item.time_slot_instance_id, item.quantity)
        ),
        inventory_committed=False,
        used=False,
    )
    db.add(booking)
    return booking


def _can_view(principal: Principal, b: Booking) -> bool:
    return b.user_id == principal.id or principal.can_manage_park(b.park_id)


def get_booking(db: Session, booking_id: str, principal: Principal) -> Booking:
    b = db.get(Booking, booking_id)
    if not b:
        raise NotFound("Booking not found")
    if not _can_view(principal, b):
        raise Forbidden("Not allowed to view this booking")
    return b


def _lock_booking(db: Session, booking_id: str) -> Booking:
    b = db.execute(select(Booking).where(Booking.id == booking_id).with_for_update()).scalar_one_or_none()
    if not b:
        raise NotFound("Booking not found")
    return b


def get_qr_code(db: Session, booking_id: str, principal: Principal) -> dict:
    b = get_booking(db, booking_id, principal)
    return {"bookingId": b.id, "ticketCode": b.ticket_code, "qrCode": b.qr_code}


def list_bookings(db: Session) -> list[Booking]:
    return db.query(Booking).order_by(Booking.created_at.desc()).all()


def list_user_bookings(db: Session, user_id: str) -> list[Booking]:
    return db.query(Booking).filter(Booking.user_id == user_id).order_by(Booking.created_at.desc()).all()


def get_bookings_by_payment_id(db: Session, payment_id: str, principal: Principal) -> list[Booking]:
    rows = db.query(Booking).filter(Booking.payment_id == payment_id).order_by(Booking.created_at).all()
    rows = [b for b in rows if _can_view(principal, b)]
    if not rows:
        raise NotFound("No bookings for this payment")
    return rows


def get_bookings_by_park_id(db: Session, park_id: str, principal: Principal) -> list[Booking]:
    if not principal.can_manage_park(park_id):
        raise Forbidden("Not allowed to view bookings of this park")
    return db.query(Booking).filter(Booking.park_id == park_id).order_by(Booking.date, Booking.start_time).all()


def filter_outdated_bookings(db: Session, user_id: str | None = None, when: str = "upcoming",
                             today: date | None = None) -> list[Booking]:
    """Bookings from today onward ("upcoming") or strictly before today ("past")."""
    today = today or date.today()
    q = db.query(Booking)
    if when == "upcoming":
        q = q.filter(Booking.date >= today).order_by(Booking.date, Booking.start_time)
    elif when == "past":
        q = q.filter(Booking.date < today).order_by(Booking.date.desc(), Booking.start_time)
    else:
        raise ValidationError("when must be upcoming or past")
    if user_id:
        q = q.filter(Booking.user_id == user_id)
    rows = q.all()
    if user_id and not rows:
        raise NotFound("No bookings found")
    return rows


def _cancel_locked(db: Session, b: Booking) -> bool:
    """Cancel an already-locked booking. Returns False when it was cancelled before."""
    if b.status == "cancelled":
        return False
    if b.used:
        raise InvariantViolation("A used ticket cannot be cancelled")
    if b.status not in ("pending", "confirmed"):
        raise InvariantViolation(f"Cannot cancel a booking in status {b.status}")
    inventory_service.release(db, b)
    b.status = "cancelled"
    return True


def cancel_booking(db: Session, booking_id: str, principal: Principal) -> Booking:
    try:
        b = _lock_booking(db, booking_id)
        if b.user_id != principal.id and not principal.is_admin:
            raise Forbidden("Not allowed to cancel this booking")
        if _cancel_locked(db, b):
            log_audit(db, principal.id, "booking.cancel", "booking", b.id,
                      {"quantity": b.quantity, "instance_id": b.time_slot_instance_id})
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(b)
    return b


def mark_booking_as_used(db: Session, booking_id: str, principal: Principal) -> Booking:
    try:
        b = _lock_booking(db, booking_id)
        if not principal.can_manage_park(b.park_id):
            raise Forbidden("Only park staff can validate tickets")
        if b.status not in USABLE_STATUSES:
            raise InvariantViolation(f"Booking is {b.status}; only confirmed bookings can be used")
        if b.used:
            raise InvariantViolation("Ticket has already been used")
        b.used = True
        b.used_at = datetime.now(timezone.utc)
        b.status = "confirmed"
        log_audit(db, principal.id, "booking.used", "booking", b.id, {"ticket_code": b.ticket_code})
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(b)
    logger.info("Ticket %s used at park %s", b.ticket_code, b.park_id)
    return b


def update_booking_status(db: Session, booking_id: str, principal: Principal, status: str | None = None,
                          payment_status: str | None = None) -> Booking:
    """Admin override. Only forward transitions; confirming commits inventory, cancelling releases it."""
    if status is not None and status not in STATUSES:
        raise ValidationError(f"Unknown status {status}")
    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        raise ValidationError(f"Unknown payment status {payment_status}")
    try:
        b = _lock_booking(db, booking_id)
        before = {"status": b.status, "payment_status": b.payment_status}

        if status and status != b.status:
            if status == "cancelled":
                _cancel_locked(db, b)
            elif status == "confirmed" and b.status == "pending":
                inventory_service.reserve(db, b)
                b.status = "confirmed"
            else:
                raise InvariantViolation(f"Cannot move booking from {b.status} to {status}")

        if payment_status and payment_status != b.payment_status:
            if b.payment_status != "pending":
                raise InvariantViolation(f"Cannot move payment from {b.payment_status} to {payment_status}")
            b.payment_status = payment_status

        log_audit(db, principal.id, "booking.status", "booking", b.id,
                  {"before": before, "after": {"status": b.status, "payment_status": b.payment_status}})
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(b)
    return b


def delete_booking(db: Session, booking_id: str, principal: Principal) -> None:
    try:
        b = _lock_booking(db, booking_id)
        inventory_service.release(db, b)
        log_audit(db, principal.id, "booking.delete", "booking", b.id,
                  {"status": b.status, "quantity": b.quantity, "ticket_code": b.ticket_code})
        db.delete(b)
        db.commit()
    except Exception:
        db.rollback()
        raise
