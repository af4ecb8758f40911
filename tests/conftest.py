import io
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.orm import sessionmaker

from core.config import settings
from database.base import Base
from database.connection import build_engine, create_tables, get_db
from main import app
from models.user import User, UserRole
from models.product import Product
from models.coupon import Coupon
from models.order import Order
from models.delivery import DeliveryZone, DeliveryPersonnel
from models.vendor import VendorType, SubscriptionPackage, VendorSubscription
from schemas.order import CheckoutRequest
from services.auth import create_access_token, build_principal
from services.order_splitter import OrderSplitter

engine = build_engine("sqlite://")
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    create_tables(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def file_engine(tmp_path):
    """A file-backed SQLite database with one connection per session."""
    file_engine = build_engine(f"sqlite:///{tmp_path / 'fulfillment.db'}")
    create_tables(bind=file_engine)
    try:
        yield file_engine
    finally:
        file_engine.dispose()


@pytest.fixture
def file_sessions(file_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=file_engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    return tmp_path / "uploads"


def make_jpeg(size=(64, 48), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes():
    return make_jpeg()


class Factory:
    """Builds committed rows for tests."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def user(self, role=UserRole.CUSTOMER, name=None, vendor_type=None):
        n = self._next()
        return self._save(User(
            email=f"user{n}@example.com",
            name=name or f"User {n}",
            role=role,
            vendor_type_id=vendor_type.id if vendor_type else None
        ))

    def customer(self):
        return self.user(UserRole.CUSTOMER)

    def vendor(self, role=UserRole.VENDOR, vendor_type=None):
        return self.user(role, vendor_type=vendor_type)

    def admin(self):
        return self.user(UserRole.ADMIN)

    def product(self, vendor, price="100.00", stock=10, final_price=None):
        return self._save(Product(
            vendor_id=vendor.id if vendor else None,
            name=f"Product {self._next()}",
            price=Decimal(price),
            final_price=Decimal(final_price) if final_price is not None else None,
            stock_quantity=stock
        ))

    def zone(self, fee="1000.00", hours=24, name=None):
        return self._save(DeliveryZone(
            name=name or f"Zone {self._next()}",
            delivery_fee=Decimal(fee),
            estimated_delivery_hours=hours
        ))

    def courier(self, zone=None, rating=4.0, total_deliveries=0, verified=True, available=True):
        user = self.user(UserRole.DELIVERY)
        return self._save(DeliveryPersonnel(
            user_id=user.id,
            zone_id=zone.id if zone else None,
            rating=rating,
            total_deliveries=total_deliveries,
            is_verified=verified,
            is_available=available
        ))

    def coupon(self, code="SAVE10", percentage=None, amount=None, **kwargs):
        return self._save(Coupon(
            code=code,
            discount_percentage=Decimal(percentage) if percentage is not None else None,
            discount_amount=Decimal(amount) if amount is not None else None,
            **kwargs
        ))

    def vendor_type(self, name="Standard", rate="10.00"):
        return self._save(VendorType(name=name, commission_rate=Decimal(rate)))

    def subscription(self, vendor, vendor_type, rate="5.00"):
        package = self._save(SubscriptionPackage(
            vendor_type_id=vendor_type.id,
            name=f"Package {self._next()}",
            price=Decimal("1000.00"),
            duration_months=1,
            commission_rate=Decimal(rate)
        ))
        return self._save(VendorSubscription(vendor_id=vendor.id, package_id=package.id))

    def principal(self, user):
        return build_principal(self.db, user)

    def token(self, user) -> str:
        return create_access_token({"sub": user.id, "role": user.role.value})

    def auth(self, user) -> dict:
        return {"Authorization": f"Bearer {self.token(user)}"}

    def checkout(self, customer, lines, payment_method="cash", **kwargs):
        """lines: [(product, quantity)] priced from the catalog."""
        request = CheckoutRequest(
            items=[{"product_id": p.id, "quantity": q} for p, q in lines],
            payment_method=payment_method,
            **kwargs
        )
        return OrderSplitter(self.db).checkout(self.principal(customer), request)

    def order(self, vendor=None, customer=None, zone=None, payment_method="cash", price="100.00", quantity=1):
        """Single pending order placed through checkout."""
        vendor = vendor or self.vendor()
        customer = customer or self.customer()
        product = self.product(vendor, price=price, stock=quantity + 10)
        result = self.checkout(
            customer, [(product, quantity)],
            payment_method=payment_method,
            delivery_zone_id=zone.id if zone else None
        )
        return self.db.query(Order).filter(Order.id == result["orders"][0]["order_id"]).one()


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def file_factory(file_sessions):
    session = file_sessions()
    try:
        yield Factory(session)
    finally:
        session.close()
