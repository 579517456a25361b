from datetime import date, timedelta

from parkbooking.models.booking import Booking

from tests.utils import auth_headers, sign, webhook_body


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_requests_without_token_are_unauthorized(client):
    assert client.get("/api/v1/cart").status_code == 401
    r = client.get("/api/v1/cart", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
    assert r.json() == {"detail": "Invalid token"}


def test_template_management_requires_staff(client, park, pricing):
    body = {
        "pricingIds": [pricing.id],
        "daysOfWeek": [1, 3],
        "startTime": "15:00",
        "endTime": "17:00",
        "ticketLimit": 20,
        "validFrom": date.today().isoformat(),
        "validUntil": (date.today() + timedelta(days=13)).isoformat(),
    }
    r = client.post(f"/api/v1/parks/{park.id}/templates", json=body, headers=auth_headers("u1"))
    assert r.status_code == 403

    staff = auth_headers("s1", role="sous admin", park_id=park.id)
    r = client.post(f"/api/v1/parks/{park.id}/templates", json=body, headers=staff)
    assert r.status_code == 201
    created = r.json()
    assert created["daysOfWeek"] == [1, 3]
    assert created["ticketLimit"] == 20

    r = client.post(f"/api/v1/parks/{park.id}/templates", json=body, headers=staff)
    assert r.status_code == 409

    r = client.get(f"/api/v1/templates/{park.id}")
    assert [t["id"] for t in r.json()] == [created["id"]]

    r = client.put(f"/api/v1/templates/{created['id']}", json={"ticketLimit": 25}, headers=staff)
    assert r.status_code == 200
    assert r.json()["ticketLimit"] == 25

    r = client.delete(f"/api/v1/templates/{created['id']}", headers=staff)
    assert r.json()["result"] == "deleted"


def test_check_overlap_endpoint(client, park, pricing, template):
    body = {
        "parkId": park.id,
        "pricingIds": [pricing.id],
        "daysOfWeek": [0, 1, 2, 3, 4, 5, 6],
        "startTime": "11:30",
        "endTime": "12:30",
        "validFrom": date.today().isoformat(),
    }
    r = client.post("/api/v1/templates/check-overlap", json=body, headers=auth_headers("a1", role="admin"))
    assert r.status_code == 200
    data = r.json()
    assert data["hasOverlap"] is True
    assert [c["id"] for c in data["conflicts"]] == [template.id]
    assert data["newSlot"]["startTime"] == "11:30"


def test_availability_and_instances(client, park, instance):
    r = client.get(f"/api/v1/parks/{park.id}/availability", params={"date": instance.date.isoformat()})
    assert r.status_code == 200
    [slot] = r.json()
    assert slot["instanceId"] == instance.id
    assert slot["pricings"][0]["unitPrice"] == 2500

    r = client.get("/api/v1/instances", params={"parkId": park.id, "date": instance.date.isoformat()})
    assert [i["id"] for i in r.json()] == [instance.id]

    r = client.put(f"/api/v1/instances/{instance.id}", json={"availableTickets": 2},
                   headers=auth_headers("a1", role="admin"))
    assert r.status_code == 200
    assert r.json()["availableTickets"] == 2

    r = client.put(f"/api/v1/instances/{instance.id}", json={"availableTickets": 9},
                   headers=auth_headers("a1", role="admin"))
    assert r.status_code == 400

    assert client.get("/api/v1/instances/missing").status_code == 404


def test_cart_endpoints(client, pricing, instance):
    h = auth_headers("user-carol")
    r = client.post("/api/v1/cart/add", json={"pricingId": pricing.id, "instanceId": instance.id, "quantity": 2},
                    headers=h)
    assert r.status_code == 200
    cart = r.json()
    assert cart["totalAmount"] == 5000 and cart["totalItems"] == 2
    item_id = cart["items"][0]["id"]

    r = client.put(f"/api/v1/cart/items/{item_id}", json={"quantity": 3}, headers=h)
    assert r.json()["totalAmount"] == 7500

    r = client.post("/api/v1/cart/sync", headers=h, json={"items": [
        {"pricingId": pricing.id, "instanceId": instance.id, "quantity": 1, "unitPrice": 1, "totalPrice": 1},
    ]})
    assert r.json()["totalAmount"] == 2500

    r = client.get("/api/v1/cart/get-by-id/user-carol", headers=h)
    assert r.status_code == 403
    r = client.get("/api/v1/cart/get-by-id/user-carol", headers=auth_headers("a1", role="admin"))
    assert r.json()["totalItems"] == 1

    r = client.request("DELETE", "/api/v1/cart/items/remove", json={"itemIds": []}, headers=h)
    assert r.status_code == 400

    r = client.delete("/api/v1/cart/clear", headers=h)
    assert r.json()["items"] == []


def test_booking_lifecycle_over_http(client, db, park, pricing, instance, gateway):
    user = auth_headers("user-dan", email="dan@example.test")
    staff = auth_headers("s1", role="sous_admin", park_id=park.id)

    client.post("/api/v1/cart/add", json={"pricingId": pricing.id, "instanceId": instance.id, "quantity": 2},
                headers=user)
    r = client.post("/api/v1/booking", headers=user)
    assert r.status_code == 201
    created = r.json()
    assert created["checkout_url"].startswith("https://pay.example/")
    [booking] = created["bookings"]
    assert booking["status"] == "pending"

    body = webhook_body("checkout.paid", created["id"])
    assert client.post("/api/v1/payments/webhook", content=body, headers={"signature": sign(body)}).status_code == 200

    r = client.get(f"/api/v1/booking/{booking['id']}", headers=user)
    assert r.json()["status"] == "confirmed"
    assert [b["id"] for b in client.get("/api/v1/booking/user", headers=user).json()] == [booking["id"]]
    assert client.get(f"/api/v1/booking/by-payment/{created['id']}", headers=user).status_code == 200
    assert client.get(f"/api/v1/booking/pakrs/{park.id}", headers=staff).status_code == 200
    assert client.get(f"/api/v1/booking/parks/{park.id}", headers=user).status_code == 403
    assert client.get("/api/v1/booking/filter/outdated", headers=user).status_code == 200
    r = client.get(f"/api/v1/booking/qr/{booking['id']}", headers=user)
    assert r.json()["qrCode"].startswith("data:image/png;base64,")

    r = client.put(f"/api/v1/booking/{booking['id']}/used", headers=user)
    assert r.status_code == 403
    r = client.put(f"/api/v1/booking/{booking['id']}/used", headers=staff)
    assert r.json()["used"] is True

    r = client.delete(f"/api/v1/booking/{booking['id']}/cancel", headers=user)
    assert r.status_code == 400

    assert client.get("/api/v1/booking", headers=user).status_code == 403
    assert len(client.get("/api/v1/booking", headers=auth_headers("a1", role="admin")).json()) == 1


def test_admin_status_and_delete_over_http(client, db, pricing, instance):
    user = auth_headers("user-eve")
    admin = auth_headers("a1", role="admin")
    client.post("/api/v1/cart/add", json={"pricingId": pricing.id, "instanceId": instance.id, "quantity": 1},
                headers=user)
    [booking] = client.post("/api/v1/booking", headers=user).json()["bookings"]

    r = client.put(f"/api/v1/booking/{booking['id']}/status", json={"status": "confirmed"}, headers=admin)
    assert r.json()["status"] == "confirmed"
    r = client.put(f"/api/v1/booking/{booking['id']}/status", json={"status": "bogus"}, headers=admin)
    assert r.status_code == 422

    r = client.delete(f"/api/v1/booking/{booking['id']}/admin", headers=admin)
    assert r.json() == {"ok": True, "id": booking["id"]}
    assert db.query(Booking).count() == 0
    db.refresh(instance)
    assert instance.available_tickets == 5
