"""
Test fixtures and shared setup.

Every test gets its own in-memory SQLite database (StaticPool keeps the one
connection alive across threads, foreign keys are enforced by the connect
hook in procurement.database). The services commit through
`procurement.database.transaction`, so there is no outer transaction to roll
back; the schema is created and dropped per test instead.
"""

import os
import pytest
from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# ── Override settings BEFORE importing app modules ────────────────────────────
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from procurement.main import app
from procurement.database import build_engine, get_db
from procurement.models.base import Base
from procurement.models import *  # noqa: F401,F403 (registers all models)
from procurement.models.reference import Location, Site, Stage, Supplier
from procurement.models.user import User, UserRole
from procurement.schemas.purchasing import InvoiceCreate, PurchaseOrderIn
from procurement.services import purchasing
from procurement.services.audit.ledger import Actor


# ── Test engine ───────────────────────────────────────────────────────────────


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def client(db: Session) -> TestClient:
    """
    FastAPI test client with DB dependency overridden to use the test session.
    """

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """What the gateway forwards once it has authenticated the user."""

    def _headers(user: User) -> dict:
        return {"X-User-Id": str(user.id), "User-Agent": "pytest"}

    return _headers


# ── Data builder fixtures ──────────────────────────────────────────────────────
# Reference rows are inserted directly so they leave no audit records behind;
# purchase orders and invoices go through the services like production writes.


def _add(db: Session, entity):
    db.add(entity)
    db.commit()
    return entity


def _user(db: Session, email: str, role: str) -> User:
    return _add(db, User(email=email, first_name="Test", last_name=role.title(), role=role))


@pytest.fixture
def super_admin(db: Session) -> User:
    return _user(db, "root@example.com", UserRole.SUPER_ADMIN)


@pytest.fixture
def admin_user(db: Session) -> User:
    return _user(db, "admin@example.com", UserRole.ADMIN)


@pytest.fixture
def staff_user(db: Session) -> User:
    return _user(db, "staff@example.com", UserRole.STAFF)


@pytest.fixture
def viewer_user(db: Session) -> User:
    return _user(db, "viewer@example.com", UserRole.VIEWER)


@pytest.fixture
def actor(super_admin: User) -> Actor:
    return Actor(
        id=super_admin.id,
        name=super_admin.full_name,
        role=super_admin.role,
        ip_address="10.0.0.1",
        user_agent="pytest",
    )


@pytest.fixture
def sample_site(db: Session) -> Site:
    return _add(db, Site(name="Riverside", site_letter="R"))


@pytest.fixture
def sample_location(db: Session, sample_site: Site) -> Location:
    return _add(db, Location(name="Plot 1", type="plot", site_id=sample_site.id))


@pytest.fixture
def sample_stage(db: Session) -> Stage:
    return _add(db, Stage(name="Foundations"))


@pytest.fixture
def sample_supplier(db: Session) -> Supplier:
    return _add(db, Supplier(name="Murphy Concrete Ltd", email="orders@murphy.example"))


@pytest.fixture
def make_location(db: Session, sample_site: Site):
    def _make(name: str, site: Site = None) -> Location:
        return _add(db, Location(name=name, type="plot", site_id=(site or sample_site).id))

    return _make


@pytest.fixture
def make_po(db: Session, actor: Actor, sample_site, sample_location, sample_stage, sample_supplier):
    """Raise a PO through the service; keyword overrides go into PurchaseOrderIn."""

    def _make(**overrides):
        fields = dict(
            supplier_id=sample_supplier.id,
            site_id=sample_site.id,
            location_id=sample_location.id,
            stage_id=sample_stage.id,
            po_date=date(2025, 3, 14),
            description="Ready-mix concrete",
            net_amount=Decimal("1000.00"),
            vat_rate=Decimal("0.23"),
        )
        fields.update(overrides)
        return purchasing.create_purchase_order(db, PurchaseOrderIn(**fields), actor)

    return _make


@pytest.fixture
def make_invoice(db: Session, actor: Actor):
    counter = iter(range(1, 1000))

    def _make(po, net, vat_rate=Decimal("0.23"), **overrides):
        fields = dict(
            purchase_order_id=po.id,
            invoice_number=f"INV-{next(counter):04d}",
            invoice_date=date(2025, 3, 31),
            net_amount=Decimal(str(net)),
            vat_rate=vat_rate,
        )
        fields.update(overrides)
        return purchasing.create_invoice(db, InvoiceCreate(**fields), actor)

    return _make
