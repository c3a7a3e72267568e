import os

# baza w pamieci i brak zewnetrznych uslug - ustawione przed importem pakietu
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""

from decimal import Decimal

import pytest

import storefront.data.models  # noqa: F401
from storefront.data.database import Base, engine, SessionLocal
from storefront.data.models import UserModel, AddressModel, ProductModel
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService


class InMemoryLock:
    """Zamiennik LockService bez redisa."""

    def __init__(self):
        self.held = {}

    def acquire_checkout_lock(self, user_id, token, ttl):
        if user_id in self.held:
            return False
        self.held[user_id] = token
        return True

    def release_checkout_lock(self, user_id, token):
        if self.held.get(user_id) == token:
            del self.held[user_id]
            return True
        return False


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.confirmed = []
        self.status_changes = []

    def order_confirmed(self, order, items, address, payment_method_label):
        if self.fail:
            raise ConnectionError("broker down")
        self.confirmed.append((order.order_number, len(items), address, payment_method_label))

    def order_status_changed(self, order, new_status, tracking_number=None):
        if self.fail:
            raise ConnectionError("broker down")
        self.status_changes.append((order.order_number, new_status, tracking_number))


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def customer(db):
    user = UserModel(first_name="Ana", last_name="Perez", email="ana@example.com", phone="+5355550001")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def other_customer(db):
    user = UserModel(first_name="Luis", last_name="Gomez", email="luis@example.com", phone="+5355550002")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin(db):
    user = UserModel(
        first_name="Store", last_name="Admin", email="admin@example.com", phone="+5355550000", role="admin"
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def address(db, customer):
    addr = AddressModel(
        user_id=customer.id,
        street="Calle 23 #456",
        city="Plaza",
        province="La Habana",
        references="Entre L y M",
        is_default=True,
    )
    db.add(addr)
    db.commit()
    return addr


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(price="10.00", stock=10, compare_price=None, is_active=True, name=None):
        counter["n"] += 1
        product = ProductModel(
            sku=f"HW-{counter['n']:04d}",
            name=name or f"Product {counter['n']}",
            price=Decimal(price),
            compare_price=Decimal(compare_price) if compare_price is not None else None,
            stock=stock,
            sales_count=0,
            is_active=is_active,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def hammer(make_product):
    return make_product(price="10.00", stock=10, name="Claw hammer")


@pytest.fixture
def drill_bits(make_product):
    # cena 5.00, cena porownawcza 6.00 -> rabat 1.00
    return make_product(price="5.00", compare_price="6.00", stock=5, name="Drill bit set")


@pytest.fixture
def cart_service(db):
    return CartService(db)


@pytest.fixture
def lock():
    return InMemoryLock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def order_service(db, notifier, lock):
    return OrderService(db, notification_service=notifier, lock_service=lock)
