import json

import pytest

from conftest import ADDRESS, auth_headers
from medishop.models import Cart, Order, Prescription, Product


def place(client, user, files=None, **form):
    data = {
        "shippingAddress": json.dumps(ADDRESS),
        "paymentMethod": "COD",
        "prescriptionUrl": "https://files.example.com/rx/1.png",
    }
    for key, value in form.items():
        data[key] = json.dumps(value) if isinstance(value, (list, dict)) else value
    return client.post("/api/orders", data=data, files=files, headers=auth_headers(user))


def stock_of(db, product):
    db.expire_all()
    return db.query(Product).filter(Product.id == product.id).one().stock


def test_place_order_from_cart(client, db, make_user, make_product, fill_cart):
    user = make_user()
    tablets = make_product(price=100.0, stock=10)
    syrup = make_product(price=50.0, stock=5)
    fill_cart(user, (tablets, 2), (syrup, 1))

    response = place(client, user)
    assert response.status_code == 201
    order = response.json()["data"]
    assert order["orderNumber"] == "ORD000001"
    assert order["status"] == "pending"
    assert order["subtotal"] == 250
    assert order["deliveryFee"] == 50
    assert order["taxes"] == 45
    assert order["total"] == 345
    assert order["totalItems"] == 3
    assert order["shippingAddress"]["phoneNumber"] == ADDRESS["phoneNumber"]
    assert [h["status"] for h in order["statusHistory"]] == ["pending"]

    assert stock_of(db, tablets) == 8
    assert stock_of(db, syrup) == 4
    cart = db.query(Cart).filter(Cart.user_id == user.id).one()
    assert cart.items == []
    assert cart.total == 0


def test_insufficient_stock_has_no_side_effects(client, db, make_user, make_product, fill_cart):
    user = make_user()
    plenty = make_product(stock=10)
    scarce = make_product(name="Scarce", stock=1)
    fill_cart(user, (plenty, 2), (scarce, 3))

    response = place(client, user)
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["productId"] == scarce.id
    assert body["errors"][0]["available"] == 1

    assert db.query(Order).count() == 0
    assert stock_of(db, plenty) == 10
    assert stock_of(db, scarce) == 1
    assert len(db.query(Cart).filter(Cart.user_id == user.id).one().items) == 2


def test_explicit_items_leave_cart_alone(client, db, make_user, make_product, fill_cart):
    user = make_user()
    in_cart = make_product()
    direct = make_product(price=300.0)
    fill_cart(user, (in_cart, 1))

    response = place(client, user, items=[{"productId": direct.id, "quantity": 2}])
    assert response.status_code == 201
    assert response.json()["data"]["items"][0]["productId"] == direct.id
    assert response.json()["data"]["deliveryFee"] == 0

    assert stock_of(db, direct) == 8
    assert len(db.query(Cart).filter(Cart.user_id == user.id).one().items) == 1


def test_empty_cart_is_rejected(client, make_user):
    response = place(client, make_user())
    assert response.status_code == 400
    assert response.json()["message"] == "Cart is empty"


def test_prescription_is_required(client, db, make_user, make_product, fill_cart):
    user = make_user()
    fill_cart(user, (make_product(), 1))

    response = place(client, user, prescriptionUrl="")
    assert response.status_code == 400
    assert response.json()["message"] == "Prescription is required"
    assert db.query(Order).count() == 0


def test_prescription_upload_is_stored(client, make_user, make_product, fill_cart):
    user = make_user()
    fill_cart(user, (make_product(), 1))

    response = place(
        client, user,
        prescriptionUrl="",
        files={"prescription": ("rx.png", b"\x89PNG fake image", "image/png")}
    )
    assert response.status_code == 201
    assert response.json()["data"]["prescriptionUrl"].startswith("/media/orders/")


def test_unsupported_upload_type(client, db, make_user, make_product, fill_cart):
    user = make_user()
    fill_cart(user, (make_product(), 1))

    response = place(
        client, user,
        prescriptionUrl="",
        files={"prescription": ("rx.exe", b"MZ", "application/octet-stream")}
    )
    assert response.status_code == 400
    assert db.query(Order).count() == 0


def test_invalid_shipping_address(client, make_user, make_product, fill_cart):
    user = make_user()
    fill_cart(user, (make_product(), 1))

    response = place(client, user, shippingAddress=json.dumps({**ADDRESS, "pincode": "12"}))
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"].startswith("shippingAddress")


def test_client_totals_are_recorded(client, make_user, make_product, fill_cart):
    user = make_user()
    fill_cart(user, (make_product(price=100.0), 1))

    response = place(client, user, subtotal="100", deliveryFee="0", taxes="0", total="100")
    assert response.status_code == 201
    assert response.json()["data"]["total"] == 100
    assert response.json()["data"]["deliveryFee"] == 0


@pytest.mark.parametrize("field", ["subtotal", "deliveryFee", "taxes", "total"])
def test_negative_client_totals_are_rejected(client, db, make_user, make_product, fill_cart, field):
    user = make_user()
    product = make_product(stock=5)
    fill_cart(user, (product, 1))

    response = place(client, user, **{field: "-5"})
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["errors"][0]["field"] == field

    assert db.query(Order).count() == 0
    assert stock_of(db, product) == 5


def test_partial_checkout_keeps_the_rest(client, db, make_user, make_product, fill_cart):
    user = make_user()
    first = make_product()
    second = make_product()
    fill_cart(user, (first, 3), (second, 1))

    response = place(client, user, selectedItems=[{"productId": first.id, "quantity": 2}])
    assert response.status_code == 201
    assert response.json()["data"]["totalItems"] == 2

    db.expire_all()
    remaining = {i.product_id: i.quantity for i in db.query(Cart).filter(Cart.user_id == user.id).one().items}
    assert remaining == {first.id: 1, second.id: 1}


def test_selection_larger_than_cart(client, make_user, make_product, fill_cart):
    user = make_user()
    product = make_product()
    fill_cart(user, (product, 1))

    response = place(client, user, selectedItems=[{"productId": product.id, "quantity": 4}])
    assert response.status_code == 400


def test_customer_sees_only_own_orders(client, make_user, make_product, fill_cart):
    owner = make_user()
    other = make_user(phone="9000000002")
    fill_cart(owner, (make_product(), 1))
    order_id = place(client, owner).json()["data"]["id"]

    assert client.get(f"/api/orders/{order_id}", headers=auth_headers(other)).status_code == 404

    listing = client.get("/api/orders", headers=auth_headers(owner)).json()
    assert [o["id"] for o in listing["data"]] == [order_id]
    assert listing["pagination"]["total"] == 1

    tracking = client.get(f"/api/orders/{order_id}/track", headers=auth_headers(owner)).json()["data"]
    assert tracking["status"] == "pending"
    assert "pending" in tracking["timeline"]


def test_cancel_restores_stock(client, db, make_user, make_product, fill_cart):
    user = make_user()
    product = make_product(stock=5)
    fill_cart(user, (product, 2))
    order_id = place(client, user).json()["data"]["id"]
    assert stock_of(db, product) == 3

    response = client.patch(
        f"/api/orders/{order_id}/cancel", json={"reason": "Ordered by mistake"}, headers=auth_headers(user)
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "cancelled"
    assert data["cancelledAt"] is not None
    assert data["statusHistory"][-1]["note"] == "Ordered by mistake"
    assert stock_of(db, product) == 5


def test_shipped_order_cannot_be_cancelled(client, db, make_user, make_admin, make_product, fill_cart):
    user = make_user()
    admin = make_admin()
    product = make_product(stock=5)
    fill_cart(user, (product, 1))
    order_id = place(client, user).json()["data"]["id"]

    client.put(f"/api/admin/orders/{order_id}/status", json={"status": "shipped"}, headers=auth_headers(admin))

    response = client.patch(f"/api/orders/{order_id}/cancel", headers=auth_headers(user))
    assert response.status_code == 400
    assert stock_of(db, product) == 4


def test_admin_status_workflow(client, make_user, make_admin, make_product, fill_cart):
    user = make_user()
    admin = make_admin()
    fill_cart(user, (make_product(), 1))
    order_id = place(client, user).json()["data"]["id"]

    shipped = client.patch(
        f"/api/admin/orders/{order_id}/status",
        json={"status": "Shipped", "trackingNumber": "TRK123"},
        headers=auth_headers(admin)
    ).json()["data"]
    assert shipped["status"] == "shipped"
    assert shipped["trackingNumber"] == "TRK123"
    assert shipped["statusHistory"][-1]["changedByType"] == "admin"

    delivered = client.put(
        f"/api/admin/orders/{order_id}/status", json={"status": "delivered"}, headers=auth_headers(admin)
    ).json()["data"]
    assert delivered["deliveredAt"] is not None
    assert list(delivered["timeline"]) == ["pending", "shipped", "delivered"]


def test_admin_rejects_unknown_status(client, make_user, make_admin, make_product, fill_cart):
    user = make_user()
    fill_cart(user, (make_product(), 1))
    order_id = place(client, user).json()["data"]["id"]

    response = client.put(
        f"/api/admin/orders/{order_id}/status", json={"status": "teleported"}, headers=auth_headers(make_admin())
    )
    assert response.status_code == 400


def test_admin_lists_orders_by_status(client, make_user, make_admin, make_product, fill_cart):
    user = make_user()
    admin = make_admin()
    fill_cart(user, (make_product(), 1))
    place(client, user)

    pending = client.get("/api/admin/orders?status=pending", headers=auth_headers(admin)).json()
    delivered = client.get("/api/admin/orders?status=delivered", headers=auth_headers(admin)).json()
    assert pending["pagination"]["total"] == 1
    assert delivered["pagination"]["total"] == 0


# ========== PRESCRIPTION ORDERS ==========

@pytest.fixture
def approved_prescription(client, make_user, make_admin):
    user = make_user()
    admin = make_admin()
    uploaded = client.post(
        "/api/prescriptions",
        files={"prescription": ("rx.pdf", b"%PDF-1.4 prescription", "application/pdf")},
        data={"doctorName": "Dr. Rao"},
        headers=auth_headers(user)
    )
    assert uploaded.status_code == 201
    prescription_id = uploaded.json()["data"]["id"]

    approved = client.put(
        f"/api/admin/prescriptions/{prescription_id}/status",
        json={"status": "approved", "pharmacistNotes": "OK to dispense"},
        headers=auth_headers(admin)
    )
    assert approved.status_code == 200
    return user, admin, prescription_id


def test_order_from_prescription(client, db, approved_prescription, make_product):
    user, admin, prescription_id = approved_prescription
    product = make_product(stock=4)

    response = client.post(
        f"/api/admin/prescriptions/{prescription_id}/order",
        json={"items": [{"productId": product.id, "quantity": 2}], "shippingAddress": ADDRESS},
        headers=auth_headers(admin)
    )
    assert response.status_code == 201
    order = response.json()["data"]
    assert order["status"] == "confirmed"
    assert order["source"] == "prescription"
    assert order["userId"] == user.id
    assert order["prescriptionId"] == prescription_id
    assert stock_of(db, product) == 2

    prescription = db.query(Prescription).filter(Prescription.id == prescription_id).one()
    assert prescription.status == "ordered"
    assert prescription.order_id == order["id"]

    again = client.post(
        f"/api/admin/prescriptions/{prescription_id}/order",
        json={"items": [{"productId": product.id, "quantity": 1}], "shippingAddress": ADDRESS},
        headers=auth_headers(admin)
    )
    assert again.status_code == 400


def test_order_status_drags_prescription_along(client, db, approved_prescription, make_product):
    user, admin, prescription_id = approved_prescription
    product = make_product()
    order_id = client.post(
        f"/api/admin/prescriptions/{prescription_id}/order",
        json={"items": [{"productId": product.id, "quantity": 1}], "shippingAddress": ADDRESS},
        headers=auth_headers(admin)
    ).json()["data"]["id"]

    client.put(f"/api/admin/orders/{order_id}/status", json={"status": "delivered"}, headers=auth_headers(admin))

    db.expire_all()
    prescription = db.query(Prescription).filter(Prescription.id == prescription_id).one()
    assert prescription.status == "delivered"
    assert prescription.status_history[-1]["changed_by_type"] == "admin"


def test_unapproved_prescription_cannot_be_ordered(client, make_user, make_admin, make_product):
    user = make_user()
    admin = make_admin()
    prescription_id = client.post(
        "/api/prescriptions",
        files={"prescription": ("rx.png", b"\x89PNG", "image/png")},
        headers=auth_headers(user)
    ).json()["data"]["id"]

    response = client.post(
        f"/api/admin/prescriptions/{prescription_id}/order",
        json={"items": [{"productId": make_product().id, "quantity": 1}], "shippingAddress": ADDRESS},
        headers=auth_headers(admin)
    )
    assert response.status_code == 400
