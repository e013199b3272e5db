from datetime import timedelta

from conftest import auth_headers
from medishop.utils.security import create_access_token, create_tokens


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_missing_header_is_unauthenticated(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Access denied. No valid token provided."


def test_non_bearer_scheme_is_unauthenticated(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert response.status_code == 401
    assert response.json()["message"] == "Access denied. No valid token provided."


def test_invalid_and_expired_tokens_are_distinguished(client, make_user):
    user = make_user()

    invalid = client.get("/api/auth/me", headers=bearer("not-a-jwt"))
    assert invalid.status_code == 401
    assert invalid.json()["message"] == "Invalid token."

    expired_token = create_access_token(
        {"sub": str(user.id), "phone": user.phone, "role": "USER"},
        expires_delta=timedelta(seconds=-10)
    )
    expired = client.get("/api/auth/me", headers=bearer(expired_token))
    assert expired.status_code == 401
    assert expired.json()["message"] == "Token expired."


def test_refresh_token_is_not_an_access_token(client, make_user):
    tokens = create_tokens(make_user())
    response = client.get("/api/auth/me", headers=bearer(tokens["refresh_token"]))
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token."


def test_deleted_principal(client, db, make_user):
    user = make_user()
    headers = auth_headers(user)
    db.delete(user)
    db.commit()

    response = client.get("/api/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token. User not found."


def test_valid_user_token(client, make_user):
    user = make_user()
    response = client.get("/api/auth/me", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["data"]["user"]["phone"] == user.phone
    assert response.headers["Cache-Control"] == "no-store"


def test_blocked_user_is_forbidden(client, make_user):
    user = make_user(is_blocked=True)
    response = client.get("/api/auth/me", headers=auth_headers(user))
    assert response.status_code == 403


def test_user_token_on_admin_route_is_forbidden(client, make_user):
    response = client.get("/api/admin/auth/me", headers=auth_headers(make_user()))
    assert response.status_code == 403
    assert response.json()["message"] == "Access denied. Admin privileges required."


def test_admin_without_privilege_flag_is_forbidden(client, make_admin):
    admin = make_admin(is_admin=False)
    response = client.get("/api/admin/auth/me", headers=auth_headers(admin))
    assert response.status_code == 403


def test_admin_token_on_admin_route(client, make_admin):
    admin = make_admin()
    response = client.get("/api/admin/auth/me", headers=auth_headers(admin))
    assert response.status_code == 200
    data = response.json()["data"]["admin"]
    assert data["isAdmin"] is True
    assert data["role"] == "ADMIN"


def test_admin_token_on_customer_route_is_forbidden(client, make_admin):
    response = client.get("/api/cart", headers=auth_headers(make_admin()))
    assert response.status_code == 403


def test_deleted_admin(client, db, make_admin):
    admin = make_admin()
    headers = auth_headers(admin)
    db.delete(admin)
    db.commit()

    response = client.get("/api/admin/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token. Admin not found."


def test_security_headers_on_api_responses(client):
    response = client.get("/api/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Content-Security-Policy"].startswith("default-src 'none'")
    assert "Strict-Transport-Security" not in response.headers
