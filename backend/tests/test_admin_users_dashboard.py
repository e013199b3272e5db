import json

import pytest

from conftest import ADDRESS, auth_headers


@pytest.fixture
def customers(make_user):
    return [
        make_user(phone="9876543210", name="Asha Verma", email="asha@example.com"),
        make_user(phone="9000000003", name="Ravi Kumar"),
        make_user(phone="9000000004", name="Meera Iyer", email="meera@example.com"),
    ]


def place(client, user):
    return client.post(
        "/api/orders",
        data={"shippingAddress": json.dumps(ADDRESS), "prescriptionUrl": "https://files.example.com/rx.png"},
        headers=auth_headers(user)
    )


def test_list_users(client, make_admin, customers):
    admin = make_admin()
    response = client.get("/api/admin/users", headers=auth_headers(admin))
    assert response.status_code == 200
    body = response.json()
    assert [u["phone"] for u in body["data"]] == ["9000000004", "9000000003", "9876543210"]
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["limit"] == 50


def test_search_users(client, make_admin, customers):
    headers = auth_headers(make_admin())

    by_name = client.get("/api/admin/users", params={"search": "ravi"}, headers=headers).json()["data"]
    assert [u["name"] for u in by_name] == ["Ravi Kumar"]

    by_email = client.get("/api/admin/users", params={"search": "example.com"}, headers=headers).json()["data"]
    assert len(by_email) == 2

    by_phone = client.get("/api/admin/users", params={"search": "98765"}, headers=headers).json()["data"]
    assert [u["name"] for u in by_phone] == ["Asha Verma"]

    paged = client.get("/api/admin/users", params={"page": 2, "limit": 2}, headers=headers).json()
    assert len(paged["data"]) == 1
    assert paged["pagination"]["pages"] == 2


def test_get_user_with_stats(client, make_admin, customers, make_product, fill_cart):
    asha = customers[0]
    fill_cart(asha, (make_product(), 1))
    place(client, asha)

    response = client.get(f"/api/admin/users/{asha.id}", headers=auth_headers(make_admin()))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["email"] == "asha@example.com"
    assert data["isBlocked"] is False
    assert data["stats"]["ordersCount"] == 1

    assert client.get("/api/admin/users/999", headers=auth_headers(make_admin(phone="9123456781"))).status_code == 404


def test_block_and_unblock(client, make_admin, customers):
    admin = make_admin()
    ravi = customers[1]
    assert client.get("/api/cart", headers=auth_headers(ravi)).status_code == 200

    blocked = client.post(
        f"/api/admin/users/{ravi.id}/block",
        json={"reason": "Repeated fake prescriptions"},
        headers=auth_headers(admin)
    )
    assert blocked.status_code == 200
    assert blocked.json()["data"]["isBlocked"] is True
    assert client.get("/api/cart", headers=auth_headers(ravi)).status_code == 403

    again = client.post(f"/api/admin/users/{ravi.id}/block", headers=auth_headers(admin))
    assert again.status_code == 400
    assert again.json()["message"] == "User is already blocked"

    only_blocked = client.get("/api/admin/users", params={"isBlocked": "true"}, headers=auth_headers(admin))
    assert [u["id"] for u in only_blocked.json()["data"]] == [ravi.id]

    unblocked = client.post(f"/api/admin/users/{ravi.id}/unblock", headers=auth_headers(admin))
    assert unblocked.status_code == 200
    assert unblocked.json()["data"]["isBlocked"] is False
    assert client.get("/api/cart", headers=auth_headers(ravi)).status_code == 200

    assert client.post(f"/api/admin/users/{ravi.id}/unblock", headers=auth_headers(admin)).status_code == 400


def test_blocked_user_cannot_log_in(client, db, make_admin, customers, sms):
    admin = make_admin()
    asha = customers[0]
    client.post(f"/api/admin/users/{asha.id}/block", headers=auth_headers(admin))

    client.post("/api/auth/send-otp", json={"phone": asha.phone})
    response = client.post("/api/auth/verify-otp", json={"phone": asha.phone, "otp": sms.last_code()})
    assert response.status_code == 403


def test_customers_cannot_manage_users(client, customers):
    headers = auth_headers(customers[0])
    assert client.get("/api/admin/users", headers=headers).status_code == 403
    assert client.post(f"/api/admin/users/{customers[1].id}/block", headers=headers).status_code == 403
    assert client.get("/api/admin/dashboard/stats", headers=headers).status_code == 403


def test_dashboard_stats(client, make_admin, customers, make_product, fill_cart):
    admin = make_admin()
    asha, ravi, meera = customers
    tablets = make_product(name="Paracetamol 500", price=100.0, stock=20)
    syrup = make_product(name="Cough Syrup", price=300.0, stock=20)
    make_product(name="Unsold", stock=5)

    fill_cart(asha, (tablets, 3), (syrup, 1))
    first = place(client, asha).json()["data"]
    fill_cart(ravi, (tablets, 1))
    second = place(client, ravi).json()["data"]
    fill_cart(meera, (syrup, 2))
    cancelled = place(client, meera).json()["data"]
    client.put(
        f"/api/admin/orders/{cancelled['id']}/status", json={"status": "cancelled"}, headers=auth_headers(admin)
    )

    response = client.get("/api/admin/dashboard/stats", headers=auth_headers(admin))
    assert response.status_code == 200
    stats = response.json()["data"]

    assert stats["totals"]["products"] == 3
    assert stats["totals"]["users"] == 3
    assert stats["totals"]["orders"] == 3
    assert stats["totals"]["revenue"] == first["total"] + second["total"]
    assert stats["revenueByStatus"]["cancelled"]["orders"] == 1
    assert stats["revenueByStatus"]["pending"] == {"revenue": first["total"] + second["total"], "orders": 2}
    assert stats["revenueByPaymentStatus"]["pending"]["orders"] == 3

    assert [o["id"] for o in stats["recentOrders"]] == [cancelled["id"], second["id"], first["id"]]
    assert stats["recentOrders"][0]["customer"]["name"] == "Meera Iyer"

    top = stats["topProducts"]
    assert [(p["name"], p["quantity"]) for p in top] == [("Paracetamol 500", 4), ("Cough Syrup", 3)]
    assert top[0]["revenue"] == 400
    assert top[0]["image"].startswith("/media/products/")
