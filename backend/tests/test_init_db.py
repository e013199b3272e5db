from init_db import init_database
from medishop.models import Admin
from medishop.utils.security import verify_password


def test_creates_admin(db):
    assert init_database("98765 43210", name="Owner", password="owner-password") == 0

    admin = db.query(Admin).filter(Admin.phone == "9876543210").one()
    assert admin.is_admin is True
    assert admin.email == "admin_9876543210@medishop.com"
    assert verify_password("owner-password", admin.password_hash)


def test_promotes_existing_account(db, make_admin):
    make_admin(phone="9123456780", is_admin=False)

    assert init_database("9123456780", name="Promoted") == 0

    db.expire_all()
    admin = db.query(Admin).filter(Admin.phone == "9123456780").one()
    assert admin.is_admin is True
    assert admin.name == "Promoted"
    assert admin.password_hash is None


def test_rejects_invalid_phone(db):
    assert init_database("12345") == 1
    assert db.query(Admin).count() == 0
