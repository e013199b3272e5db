import os
import tempfile

UPLOAD_ROOT = tempfile.mkdtemp(prefix="medishop-uploads-")

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["APP_ENV"] = "development"
os.environ["DEBUG"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OTP_HASH_ROUNDS"] = "4"
os.environ["OTP_PROVIDER"] = "mock"
os.environ["FRONTEND_BASE_URL"] = ""
os.environ["UPLOAD_DIR"] = UPLOAD_ROOT

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from medishop.database import Base, SessionLocal, engine  # noqa: E402
from medishop.errors import SmsDeliveryFailed  # noqa: E402
from medishop.main import app  # noqa: E402
from medishop.models import Admin, Cart, CartItem, Product, User  # noqa: E402
from medishop.services.file_storage import LocalFileStorage, get_file_storage  # noqa: E402
from medishop.services.sms_provider import SmsProvider, get_sms_provider  # noqa: E402
from medishop.utils.security import create_tokens, get_password_hash  # noqa: E402

ADDRESS = {
    "name": "Asha Verma",
    "phoneNumber": "9876543210",
    "address": "12 MG Road",
    "city": "Pune",
    "state": "Maharashtra",
    "pincode": "411001",
    "landmark": "Near the park"
}


class RecordingSms(SmsProvider):
    """Keeps every message so tests can read the code that was sent"""

    name = "test"

    def __init__(self):
        self.sent = []

    async def send(self, phone, message):
        self.sent.append((phone, message))
        return {"provider": self.name, "message_id": f"test_{len(self.sent)}"}

    def last_code(self):
        return self.sent[-1][1].split("OTP is ")[1][:6]


class FailingSms(SmsProvider):
    name = "broken"

    async def send(self, phone, message):
        raise SmsDeliveryFailed("Failed to send OTP: gateway down")


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now = self.now + delta


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sms():
    return RecordingSms()


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(str(tmp_path), "/media")


@pytest.fixture
def client(db, sms, storage):
    app.dependency_overrides[get_sms_provider] = lambda: sms
    app.dependency_overrides[get_file_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(phone="9876543210", **kwargs):
        user = User(phone=phone, role="USER", is_verified=True, **kwargs)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_admin(db):
    def _make_admin(phone="9123456780", password=None, **kwargs):
        admin = Admin(
            name="Pharmacist",
            phone=phone,
            password_hash=get_password_hash(password) if password else None,
            **kwargs
        )
        db.add(admin)
        db.commit()
        db.refresh(admin)
        return admin
    return _make_admin


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make_product(name=None, price=100.0, stock=10, mrp=None, category="OTC Medicines", **kwargs):
        counter["n"] += 1
        product = Product(
            name=name or f"Product {counter['n']}",
            brand="Acme Pharma",
            sku=f"SKU{counter['n']:04d}",
            price=price,
            mrp=mrp or price * 1.2,
            stock=stock,
            description="Test product",
            images=[f"/media/products/{counter['n']}.png"],
            category=category,
            **kwargs
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    return _make_product


@pytest.fixture
def fill_cart(db):
    def _fill_cart(user, *lines):
        cart = Cart(user_id=user.id, items=[])
        for product, quantity in lines:
            cart.items.append(CartItem(
                product_id=product.id,
                quantity=quantity,
                price=product.price,
                name=product.name,
                image=product.primary_image
            ))
        cart.calculate_totals()
        db.add(cart)
        db.commit()
        db.refresh(cart)
        return cart
    return _fill_cart


def auth_headers(principal) -> dict:
    return {"Authorization": f"Bearer {create_tokens(principal)['access_token']}"}
