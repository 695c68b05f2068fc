"""Pytest fixtures for bloomshop tests."""

import logging
import tempfile
from pathlib import Path

import pytest

from bloomshop.addresses import AddressBook
from bloomshop.catalog import Catalog
from bloomshop.models import OrderStatus
from bloomshop.orders import OrderLedger
from bloomshop.pricing import PricingPolicy
from bloomshop.reviews import ReviewLedger
from bloomshop.store import Database
from bloomshop.wishlist import Wishlist

USER_ID = 1
OTHER_USER_ID = 2
ADMIN_ID = 99


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers installed by configure_logging so they don't outlive a test."""
    yield
    log = logging.getLogger("bloomshop")
    for handler in list(log.handlers):
        log.removeHandler(handler)


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db(temp_dir):
    """An open store in a temporary data directory."""
    database = Database(temp_dir / "data").open()
    yield database
    database.close()


@pytest.fixture
def catalog(db):
    return Catalog(db)


@pytest.fixture
def ledger(db):
    return OrderLedger(db, PricingPolicy())


@pytest.fixture
def address_book(db):
    return AddressBook(db)


@pytest.fixture
def review_ledger(db):
    return ReviewLedger(db)


@pytest.fixture
def wishlist(db):
    return Wishlist(db)


@pytest.fixture
def products(catalog):
    """
    rose: 29.99, stock 10
    tulip: 12.50, stock 1
    lily: 40.00, stock 5, discontinued
    """
    rose = catalog.create_product(
        {"name": "Red Rose", "price": "29.99", "category": "roses", "stock": 10}
    )
    tulip = catalog.create_product(
        {"name": "Tulip", "price": "12.50", "category": "tulips", "stock": 1}
    )
    lily = catalog.create_product(
        {"name": "Stargazer Lily", "price": "40.00", "category": "lilies", "stock": 5}
    )
    lily = catalog.delete_product(lily.id)
    return {"rose": rose, "tulip": tulip, "lily": lily}


def address_data(**overrides):
    data = {
        "recipient_name": "Jane Doe",
        "address_line1": "1 Garden Way",
        "city": "Portland",
        "state": "OR",
        "postal_code": "97201",
    }
    data.update(overrides)
    return data


@pytest.fixture
def address(address_book):
    """USER_ID's first (and therefore default) address."""
    return address_book.create_address(USER_ID, address_data())


def place(ledger, product_id, quantity=1, user_id=USER_ID, **kwargs):
    """Place a single-line credit-card order."""
    kwargs.setdefault("payment_method", "credit_card")
    return ledger.place_order(
        user_id,
        [{"product_id": product_id, "quantity": quantity}],
        **kwargs,
    )


def confirmed_order(ledger, product_id, address_id, user_id=USER_ID):
    """Place an order and move it to processing so the purchase counts as paid."""
    detail = place(ledger, product_id, user_id=user_id, shipping_address_id=address_id)
    return ledger.update_status(detail.order.id, OrderStatus.PROCESSING.value)
