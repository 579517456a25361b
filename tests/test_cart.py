from datetime import date, timedelta

import pytest

from parkbooking.core.errors import Conflict, NotFound, ValidationError
from parkbooking.models.cart import Cart, CartItem
from parkbooking.models.pricing import Pricing
from parkbooking.models.time_slot_instance import TimeSlotInstance
from parkbooking.services import cart_service


def test_first_add_creates_one_pending_cart(db, alice, pricing, instance):
    cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 2)
    cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 1)

    carts = db.query(Cart).filter(Cart.user_id == alice.id).all()
    assert len(carts) == 1 and carts[0].status == "pending"
    summary = cart_service.get_cart(db, alice.id)
    assert len(summary["items"]) == 1
    assert summary["items"][0].quantity == 3
    assert summary["totalItems"] == 3
    assert summary["totalAmount"] == 3 * 2500


def test_add_checks_merged_quantity_against_availability(db, alice, pricing, instance):
    cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 4)
    with pytest.raises(Conflict):
        cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 2)
    assert cart_service.get_cart(db, alice.id)["totalItems"] == 4


def test_cart_does_not_hold_tickets(db, alice, bob, pricing, instance):
    cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 5)
    cart_service.add_to_cart(db, bob.id, pricing.id, instance.id, 5)
    db.refresh(instance)
    assert instance.available_tickets == 5


@pytest.mark.parametrize("quantity", [0, -1])
def test_quantity_must_be_positive(db, alice, pricing, instance, quantity):
    with pytest.raises(ValidationError):
        cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, quantity)


def test_past_dates_cannot_be_added(db, alice, pricing, instance):
    with pytest.raises(ValidationError):
        cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 1, today=instance.date + timedelta(days=1))


def test_dates_beyond_booking_window_are_rejected(db, alice, park, pricing, instance):
    park.max_booking_days = 0
    db.commit()
    with pytest.raises(ValidationError, match="0 days ahead"):
        cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 1)


def test_pricing_must_belong_to_the_slot(db, alice, park, instance):
    other = Pricing(id="pricing-vip", park_id=park.id, name="VIP", price=9000)
    db.add(other)
    db.commit()
    with pytest.raises(ValidationError):
        cart_service.add_to_cart(db, alice.id, other.id, instance.id, 1)


def test_update_item_recomputes_total(db, alice, pricing, instance):
    cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 1)
    item = db.query(CartItem).one()
    updated = cart_service.update_cart_item(db, alice.id, item.id, 4)
    assert updated.total_price == 4 * 2500
    with pytest.raises(Conflict):
        cart_service.update_cart_item(db, alice.id, item.id, 6)


def test_other_users_items_are_not_visible(db, alice, bob, pricing, instance):
    cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 1)
    item = db.query(CartItem).one()
    cart_service.add_to_cart(db, bob.id, pricing.id, instance.id, 1)
    with pytest.raises(NotFound):
        cart_service.update_cart_item(db, bob.id, item.id, 2)


def test_removing_last_item_keeps_the_cart(db, alice, pricing, instance):
    cart = cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 1)
    item = db.query(CartItem).one()

    assert cart_service.remove_cart_items(db, alice.id, [item.id]) == 1

    assert db.get(Cart, cart.id).status == "pending"
    assert cart_service.get_cart(db, alice.id)["items"] == []


def test_remove_requires_item_ids(db, alice):
    with pytest.raises(ValidationError):
        cart_service.remove_cart_items(db, alice.id, [])


def test_clear_cart(db, alice, pricing, instance, template):
    other_day = db.query(TimeSlotInstance).filter(
        TimeSlotInstance.template_id == template.id, TimeSlotInstance.date == date.today() + timedelta(days=2)
    ).one()
    cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 1)
    cart_service.add_to_cart(db, alice.id, pricing.id, other_day.id, 1)

    assert cart_service.clear_cart(db, alice.id) == 2
    assert cart_service.get_cart(db, alice.id)["totalAmount"] == 0


def test_sync_replaces_lines_and_ignores_client_prices(db, alice, pricing, instance, template):
    other_day = db.query(TimeSlotInstance).filter(
        TimeSlotInstance.template_id == template.id, TimeSlotInstance.date == date.today() + timedelta(days=3)
    ).one()
    cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 4)

    cart_service.sync_cart(db, alice.id, [
        {"pricing_id": pricing.id, "instance_id": other_day.id, "quantity": 2, "unit_price": 1},
        {"pricing_id": pricing.id, "instance_id": instance.id, "quantity": 1},
        {"pricing_id": pricing.id, "instance_id": other_day.id, "quantity": 1},
    ])

    summary = cart_service.get_cart(db, alice.id)
    assert [(i.time_slot_instance_id, i.quantity) for i in summary["items"]] == [(other_day.id, 3), (instance.id, 1)]
    assert summary["totalAmount"] == 4 * 2500


def test_sync_rejects_unknown_references_without_touching_cart(db, alice, pricing, instance):
    cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 2)
    with pytest.raises(ValidationError):
        cart_service.sync_cart(db, alice.id, [{"pricing_id": pricing.id, "instance_id": "nope", "quantity": 1}])
    assert cart_service.get_cart(db, alice.id)["totalItems"] == 2


def test_admin_cart_lookup(db, alice, pricing, instance):
    with pytest.raises(NotFound):
        cart_service.get_cart_for_user(db, alice.id)
    cart_service.add_to_cart(db, alice.id, pricing.id, instance.id, 1)
    assert cart_service.get_cart_for_user(db, alice.id)["totalItems"] == 1
