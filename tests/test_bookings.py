from datetime import date, timedelta

import pytest

from parkbooking.core.errors import Forbidden, InvariantViolation, NotFound
from parkbooking.core.security import Principal
from parkbooking.models.booking import Booking
from parkbooking.services import booking_service, checkout_service

from tests.utils import sign, webhook_body


@pytest.fixture
def paid_booking(db, alice, instance, fill_cart, gateway) -> Booking:
    fill_cart(alice, instance, 2)
    result = checkout_service.create_checkout(db, alice, gateway)
    body = webhook_body("checkout.paid", result["id"])
    checkout_service.handle_webhook(db, body, sign(body))
    b = db.query(Booking).one()
    assert (b.status, b.payment_status) == ("confirmed", "paid")
    return b


@pytest.fixture
def staff(park):
    return Principal(id="staff-1", role="sous_admin", park_id=park.id)


def test_cancel_restores_quantity_once(db, alice, instance, paid_booking):
    db.refresh(instance)
    assert instance.available_tickets == 3

    booking_service.cancel_booking(db, paid_booking.id, alice)
    booking_service.cancel_booking(db, paid_booking.id, alice)

    db.refresh(instance)
    assert instance.available_tickets == 5
    assert paid_booking.status == "cancelled"


def test_cancelled_booking_cannot_be_used(db, alice, staff, paid_booking):
    booking_service.cancel_booking(db, paid_booking.id, alice)
    with pytest.raises(InvariantViolation):
        booking_service.mark_booking_as_used(db, paid_booking.id, staff)


def test_used_ticket_cannot_be_used_again_or_cancelled(db, alice, staff, instance, paid_booking):
    b = booking_service.mark_booking_as_used(db, paid_booking.id, staff)
    assert b.used is True and b.used_at is not None and b.status == "confirmed"

    with pytest.raises(InvariantViolation):
        booking_service.mark_booking_as_used(db, paid_booking.id, staff)
    with pytest.raises(InvariantViolation):
        booking_service.cancel_booking(db, paid_booking.id, alice)
    db.refresh(instance)
    assert instance.available_tickets == 3


def test_pending_booking_cannot_be_used(db, alice, staff, instance, fill_cart, gateway):
    fill_cart(alice, instance, 1)
    [b] = checkout_service.create_checkout(db, alice, gateway)["bookings"]
    with pytest.raises(InvariantViolation):
        booking_service.mark_booking_as_used(db, b.id, staff)


def test_cancelling_an_unpaid_booking_does_not_touch_inventory(db, alice, instance, fill_cart, gateway):
    fill_cart(alice, instance, 2)
    [b] = checkout_service.create_checkout(db, alice, gateway)["bookings"]

    booking_service.cancel_booking(db, b.id, alice)

    db.refresh(instance)
    assert instance.available_tickets == 5


def test_only_owner_or_admin_cancels(db, bob, admin, paid_booking):
    with pytest.raises(Forbidden):
        booking_service.cancel_booking(db, paid_booking.id, bob)
    assert booking_service.cancel_booking(db, paid_booking.id, admin).status == "cancelled"


def test_staff_of_another_park_cannot_validate(db, paid_booking):
    outsider = Principal(id="staff-9", role="sous_admin", park_id="elsewhere")
    with pytest.raises(Forbidden):
        booking_service.mark_booking_as_used(db, paid_booking.id, outsider)


def test_admin_status_changes_only_move_forward(db, admin, alice, instance, fill_cart, gateway):
    fill_cart(alice, instance, 2)
    [b] = checkout_service.create_checkout(db, alice, gateway)["bookings"]

    booking_service.update_booking_status(db, b.id, admin, status="confirmed", payment_status="paid")
    db.refresh(instance)
    assert instance.available_tickets == 3

    with pytest.raises(InvariantViolation):
        booking_service.update_booking_status(db, b.id, admin, status="pending")
    with pytest.raises(InvariantViolation):
        booking_service.update_booking_status(db, b.id, admin, payment_status="failed")

    booking_service.update_booking_status(db, b.id, admin, status="cancelled")
    db.refresh(instance)
    assert instance.available_tickets == 5


def test_delete_releases_inventory(db, admin, instance, paid_booking):
    booking_service.delete_booking(db, paid_booking.id, admin)
    assert db.query(Booking).count() == 0
    db.refresh(instance)
    assert instance.available_tickets == 5


def test_read_projections(db, alice, bob, admin, park, paid_booking):
    assert booking_service.get_booking(db, paid_booking.id, alice).id == paid_booking.id
    with pytest.raises(Forbidden):
        booking_service.get_booking(db, paid_booking.id, bob)
    with pytest.raises(NotFound):
        booking_service.get_booking(db, "missing", admin)

    assert booking_service.list_user_bookings(db, alice.id) == [paid_booking]
    assert booking_service.list_user_bookings(db, bob.id) == []
    assert booking_service.get_bookings_by_payment_id(db, paid_booking.payment_id, alice) == [paid_booking]
    assert booking_service.get_bookings_by_park_id(db, park.id, admin) == [paid_booking]
    with pytest.raises(Forbidden):
        booking_service.get_bookings_by_park_id(db, park.id, alice)

    qr = booking_service.get_qr_code(db, paid_booking.id, alice)
    assert qr["ticketCode"] == paid_booking.ticket_code
    assert qr["qrCode"].startswith("data:image/png;base64,")


def test_filter_outdated_bookings(db, alice, bob, paid_booking):
    assert booking_service.filter_outdated_bookings(db, alice.id, "upcoming") == [paid_booking]
    with pytest.raises(NotFound):
        booking_service.filter_outdated_bookings(db, alice.id, "past")
    later = date.today() + timedelta(days=5)
    assert booking_service.filter_outdated_bookings(db, None, "past", today=later) == [paid_booking]
    with pytest.raises(NotFound):
        booking_service.filter_outdated_bookings(db, bob.id, "upcoming")
