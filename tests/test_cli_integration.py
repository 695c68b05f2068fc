"""Integration tests for CLI."""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from bloomshop.orders import OrderLedger
from bloomshop.store import Database

from .conftest import USER_ID


def run_bloomshop(args: list[str], data_dir: Path) -> subprocess.CompletedProcess:
    """Run bloomshop CLI command against a data directory."""
    env = dict(os.environ, BLOOMSHOP_DATA_DIR=str(data_dir), BLOOMSHOP_LOG_LEVEL="WARNING")
    return subprocess.run(
        [sys.executable, "-m", "bloomshop.cli"] + args,
        capture_output=True,
        text=True,
        env=env,
    )


@pytest.fixture
def data_dir(temp_dir):
    return temp_dir / "data"


@pytest.fixture
def seeded(data_dir):
    result = run_bloomshop(["seed"], data_dir)
    assert result.returncode == 0
    return data_dir


class TestCLIIntegration:
    """Integration tests for CLI commands."""

    def test_seed(self, data_dir):
        """bloomshop seed should load the demo catalog once."""
        result = run_bloomshop(["seed"], data_dir)
        assert result.returncode == 0
        assert "Seeded 6 products." in result.stdout

        result = run_bloomshop(["seed"], data_dir)
        assert result.returncode == 0
        assert "Use --force" in result.stdout

        result = run_bloomshop(["seed", "--force"], data_dir)
        assert "Seeded 6 products." in result.stdout

    def test_products_empty(self, data_dir):
        result = run_bloomshop(["products"], data_dir)
        assert result.returncode == 0
        assert "No products found." in result.stdout

    def test_products_listing(self, seeded):
        result = run_bloomshop(["products"], seeded)

        assert result.returncode == 0
        assert "Products (6):" in result.stdout
        assert "Red Rose Bouquet *" in result.stdout
        assert "(was $39.99)" in result.stdout
        assert "stock 0 [out_of_stock]" in result.stdout

    def test_products_by_category_json(self, seeded):
        result = run_bloomshop(["products", "--category", "roses", "--json"], seeded)

        assert result.returncode == 0
        products = json.loads(result.stdout)
        assert [p["name"] for p in products] == ["Blush Garden Roses", "Red Rose Bouquet"]
        assert products[1]["price"] == "29.99"

    def test_stock_set_and_delta(self, seeded):
        result = run_bloomshop(["stock", "6", "--set", "7"], seeded)
        assert result.returncode == 0
        assert "Stock for Spring Tulips: 7 [low_stock]" in result.stdout

        result = run_bloomshop(["stock", "6", "--delta", "-7"], seeded)
        assert "Stock for Spring Tulips: 0 [out_of_stock]" in result.stdout

    def test_stock_below_zero_fails(self, seeded):
        result = run_bloomshop(["stock", "6", "--delta", "-1"], seeded)
        assert result.returncode == 1
        assert result.stderr.startswith("Error:")

    def test_stock_unknown_product(self, seeded):
        result = run_bloomshop(["stock", "404", "--set", "1"], seeded)
        assert result.returncode == 1
        assert "Product 404 not found" in result.stderr

    def test_stock_requires_one_option(self, seeded):
        result = run_bloomshop(["stock", "1"], seeded)
        assert result.returncode == 2

    def test_orders_empty(self, seeded):
        result = run_bloomshop(["orders"], seeded)
        assert result.returncode == 0
        assert "No orders found." in result.stdout

    def test_orders_listing(self, seeded):
        with Database(seeded).open() as db:
            OrderLedger(db).place_order(
                USER_ID,
                [{"product_id": 1, "quantity": 1}],
                payment_method="cash_on_delivery",
                shipping_method="pickup",
            )

        result = run_bloomshop(["orders"], seeded)
        assert result.returncode == 0
        assert "Orders (1 of 1):" in result.stdout
        assert "FS-" in result.stdout
        assert "Revenue: $" in result.stdout

        result = run_bloomshop(["orders", "--status", "delivered"], seeded)
        assert "No orders found." in result.stdout

        result = run_bloomshop(["orders", "--json"], seeded)
        data = json.loads(result.stdout)
        assert data["summary"]["count"] == 1
        assert data["orders"][0]["status"] == "pending"

    def test_no_command_prints_help(self, data_dir):
        result = run_bloomshop([], data_dir)
        assert result.returncode == 0
        assert "usage:" in result.stdout
