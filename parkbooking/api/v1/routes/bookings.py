from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from parkbooking.db.session import get_db
from parkbooking.api.deps import get_principal, require_roles
from parkbooking.core.security import Principal
from parkbooking.models.booking import Booking
from parkbooking.schemas.booking import BookingOut, BookingStatusUpdate, QrOut
from parkbooking.schemas.payments import CheckoutWithBookingsOut
from parkbooking.services import booking_service, checkout_service
from parkbooking.services.chargily_client import get_payment_gateway

router = APIRouter(prefix="/booking", tags=["bookings"])

staff = require_roles("admin", "sous_admin")


def booking_out(b: Booking) -> BookingOut:
    return BookingOut(
        id=b.id,
        userId=b.user_id,
        parkId=b.park_id,
        pricingId=b.pricing_id,
        instanceId=b.time_slot_instance_id,
        quantity=b.quantity,
        totalPrice=b.total_price,
        date=b.date,
        startTime=b.start_time,
        endTime=b.end_time,
        status=b.status,
        paymentStatus=b.payment_status,
        paymentId=b.payment_id,
        paymentMethod=b.payment_method,
        ticketCode=b.ticket_code,
        used=bool(b.used),
        usedAt=b.used_at,
        createdAt=b.created_at,
    )


@router.post("", response_model=CheckoutWithBookingsOut, status_code=201)
def create_bookings(db: Session = Depends(get_db), principal: Principal = Depends(get_principal),
                    gateway=Depends(get_payment_gateway)):
    result = checkout_service.create_checkout(db, principal, gateway)
    return CheckoutWithBookingsOut(
        id=result["id"],
        checkout_url=result["checkout_url"],
        total=result["total"],
        bookings=[booking_out(b) for b in result["bookings"]],
    )


@router.get("", response_model=list[BookingOut])
def list_bookings(db: Session = Depends(get_db), principal: Principal = Depends(require_roles("admin"))):
    return [booking_out(b) for b in booking_service.list_bookings(db)]


@router.get("/user", response_model=list[BookingOut])
def my_bookings(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return [booking_out(b) for b in booking_service.list_user_bookings(db, principal.id)]


@router.get("/filter/outdated", response_model=list[BookingOut])
def filter_outdated(when: Literal["upcoming", "past"] = "upcoming", db: Session = Depends(get_db),
                    principal: Principal = Depends(get_principal)):
    # admins see every user's bookings
    user_id = None if principal.is_admin else principal.id
    return [booking_out(b) for b in booking_service.filter_outdated_bookings(db, user_id=user_id, when=when)]


@router.get("/by-payment/{payment_id}", response_model=list[BookingOut])
def by_payment(payment_id: str, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return [booking_out(b) for b in booking_service.get_bookings_by_payment_id(db, payment_id, principal)]


@router.get("/pakrs/{park_id}", response_model=list[BookingOut])
@router.get("/parks/{park_id}", response_model=list[BookingOut])
def by_park(park_id: str, db: Session = Depends(get_db), principal: Principal = Depends(staff)):
    return [booking_out(b) for b in booking_service.get_bookings_by_park_id(db, park_id, principal)]


@router.get("/qr/{booking_id}", response_model=QrOut)
def get_qr(booking_id: str, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return booking_service.get_qr_code(db, booking_id, principal)


@router.put("/{booking_id}/used", response_model=BookingOut)
def mark_used(booking_id: str, db: Session = Depends(get_db), principal: Principal = Depends(staff)):
    return booking_out(booking_service.mark_booking_as_used(db, booking_id, principal))


@router.delete("/{booking_id}/cancel", response_model=BookingOut)
def cancel(booking_id: str, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return booking_out(booking_service.cancel_booking(db, booking_id, principal))


@router.put("/{booking_id}/status", response_model=BookingOut)
def update_status(booking_id: str, body: BookingStatusUpdate, db: Session = Depends(get_db),
                  principal: Principal = Depends(require_roles("admin"))):
    b = booking_service.update_booking_status(
        db, booking_id, principal,
        status=body.status.value if body.status else None,
        payment_status=body.paymentStatus.value if body.paymentStatus else None,
    )
    return booking_out(b)


@router.delete("/{booking_id}/admin")
def delete_booking(booking_id: str, db: Session = Depends(get_db),
                   principal: Principal = Depends(require_roles("admin"))):
    booking_service.delete_booking(db, booking_id, principal)
    return {"ok": True, "id": booking_id}


@router.get("/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return booking_out(booking_service.get_booking(db, booking_id, principal))
