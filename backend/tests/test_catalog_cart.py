from conftest import auth_headers
from medishop.models import Product

NEW_PRODUCT = {
    "name": "Paracetamol 500mg",
    "brand": "Acme Pharma",
    "sku": "para-500",
    "price": 30,
    "mrp": 40,
    "stock": 25,
    "description": "Fever and pain relief",
    "category": "OTC Medicines",
}


def test_product_listing_hides_inactive(client, make_product):
    visible = make_product(name="Cetirizine")
    hidden = make_product(name="Withdrawn", is_active=False)

    body = client.get("/api/products").json()
    assert [p["id"] for p in body["data"]] == [visible.id]
    assert body["pagination"]["total"] == 1
    assert client.get(f"/api/products/{hidden.id}").status_code == 404


def test_product_search_and_category(client, make_product):
    make_product(name="Vitamin C", category="Health Supplements")
    make_product(name="Cough Syrup")

    searched = client.get("/api/products", params={"search": "vitamin"}).json()["data"]
    assert [p["name"] for p in searched] == ["Vitamin C"]

    by_category = client.get("/api/products", params={"category": "Health Supplements"}).json()["data"]
    assert len(by_category) == 1


def test_admin_creates_and_updates_products(client, db, make_admin):
    admin = make_admin()

    created = client.post("/api/admin/products", json=NEW_PRODUCT, headers=auth_headers(admin))
    assert created.status_code == 201
    product = created.json()["data"]
    assert product["sku"] == "PARA-500"
    assert product["inStock"] is True
    assert product["discountPercentage"] == 25

    duplicate = client.post("/api/admin/products", json=NEW_PRODUCT, headers=auth_headers(admin))
    assert duplicate.status_code == 409

    updated = client.patch(
        f"/api/admin/products/{product['id']}", json={"stock": 0}, headers=auth_headers(admin)
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["inStock"] is False


def test_customer_cannot_manage_products(client, make_user):
    response = client.post("/api/admin/products", json=NEW_PRODUCT, headers=auth_headers(make_user()))
    assert response.status_code == 403


def test_unknown_category_is_rejected(client, make_admin):
    response = client.post(
        "/api/admin/products",
        json={**NEW_PRODUCT, "category": "Snacks"},
        headers=auth_headers(make_admin())
    )
    assert response.status_code == 400


def test_cart_lifecycle(client, make_user, make_product):
    user = make_user()
    product = make_product(price=100.0, stock=5)
    headers = auth_headers(user)

    empty = client.get("/api/cart", headers=headers).json()["data"]
    assert empty["items"] == []
    assert empty["total"] == 0

    added = client.post("/api/cart/items", json={"productId": product.id, "quantity": 2}, headers=headers)
    assert added.status_code == 200
    cart = added.json()["data"]
    assert cart["items"][0]["quantity"] == 2
    assert cart["subtotal"] == 200
    assert cart["deliveryFee"] == 50
    assert cart["total"] == 286

    again = client.post("/api/cart/items", json={"productId": product.id, "quantity": 1}, headers=headers)
    assert again.json()["data"]["items"][0]["quantity"] == 3

    updated = client.put(f"/api/cart/items/{product.id}", json={"quantity": 1}, headers=headers)
    assert updated.json()["data"]["subtotal"] == 100

    removed = client.delete(f"/api/cart/items/{product.id}", headers=headers)
    assert removed.json()["data"]["items"] == []


def test_cart_respects_stock(client, make_user, make_product):
    user = make_user()
    product = make_product(stock=2)
    headers = auth_headers(user)

    response = client.post("/api/cart/items", json={"productId": product.id, "quantity": 3}, headers=headers)
    assert response.status_code == 400

    client.post("/api/cart/items", json={"productId": product.id, "quantity": 2}, headers=headers)
    response = client.put(f"/api/cart/items/{product.id}", json={"quantity": 5}, headers=headers)
    assert response.status_code == 400


def test_cart_unknown_product(client, db, make_user):
    response = client.post("/api/cart/items", json={"productId": 999, "quantity": 1}, headers=auth_headers(make_user()))
    assert response.status_code == 404
    assert db.query(Product).count() == 0


def test_clear_cart(client, make_user, make_product):
    user = make_user()
    headers = auth_headers(user)
    client.post("/api/cart/items", json={"productId": make_product().id, "quantity": 1}, headers=headers)

    cleared = client.delete("/api/cart", headers=headers)
    assert cleared.status_code == 200
    assert cleared.json()["data"]["items"] == []
