"""Pytest configuration and shared fixtures."""

from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from fakes import (
    FakeEmailSender,
    FakeGateway,
    InMemoryCatalog,
    InMemoryOrderStore,
    InMemoryRegistrationStore,
)
from storefront.domain import CatalogItem, Event, PriceOption
from storefront.gateway import get_gateway
from storefront.mailer import get_email_sender
from storefront.main import app, get_catalog, get_order_store, get_registration_store
from storefront.notifications import NotificationDispatcher
from storefront.reconciler import PaymentEventReconciler


@pytest.fixture
def cookie() -> CatalogItem:
    """Legacy product priced through the small/medium/large columns."""
    return CatalogItem(
        id=uuid4(),
        name="Chocolate Chip Cookie Box",
        price_small=Decimal("6.00"),
        price_medium=Decimal("8.00"),
        price_large=Decimal("10.00"),
    )


@pytest.fixture
def cake() -> CatalogItem:
    """Product priced through the flexible options list."""
    return CatalogItem(
        id=uuid4(),
        name="Celebration Cake",
        options=(
            PriceOption(label="6 inch", price=Decimal("32.50")),
            PriceOption(label="8 inch", price=Decimal("45.00")),
        ),
    )


@pytest.fixture
def workshop() -> Event:
    return Event(
        id=uuid4(),
        title="Cookie Decorating Workshop",
        price_per_entry=Decimal("25.00"),
        capacity=5,
        location="Main store",
    )


@pytest.fixture
def catalog(cookie, cake, workshop) -> InMemoryCatalog:
    return InMemoryCatalog(products=[cookie, cake], events=[workshop])


@pytest.fixture
def orders() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def registrations() -> InMemoryRegistrationStore:
    return InMemoryRegistrationStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def dispatcher(sender) -> NotificationDispatcher:
    return NotificationDispatcher(sender, bcc=["hello@example.com"])


@pytest.fixture
def reconciler(gateway, catalog, orders, registrations, dispatcher) -> PaymentEventReconciler:
    return PaymentEventReconciler(
        gateway=gateway,
        catalog=catalog,
        orders=orders,
        registrations=registrations,
        dispatcher=dispatcher,
    )


@pytest.fixture
def api_client(catalog, orders, registrations, gateway, sender) -> TestClient:
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_order_store] = lambda: orders
    app.dependency_overrides[get_registration_store] = lambda: registrations
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_email_sender] = lambda: sender
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def checkout_payload(cookie, cake) -> dict:
    return {
        "customerName": "Ada Baker",
        "customerEmail": "ada@example.com",
        "customerPhone": "555-0100",
        "deliveryType": "pickup",
        "pickupDeliveryTime": "2026-10-24T14:30:00",
        "notes": "Please box separately",
        "cart": [
            {"itemId": str(cookie.id), "quantity": 2, "size": "medium", "customizations": ["extra chips"]},
            {"itemId": str(cake.id), "quantity": 1, "sizeSelector": 1},
        ],
    }
