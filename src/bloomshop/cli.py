"""Command-line interface for bloomshop."""

import argparse
import json
import sys

from . import __version__
from .catalog import Catalog, ProductFilter, product_view
from .config import Settings, configure_logging
from .errors import BloomshopError
from .orders import OrderFilter, OrderLedger
from .seed import seed_products
from .store import Database
from .utils import format_currency, format_order, format_product


def get_database() -> Database:
    """Open the store configured by the environment."""
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    return Database(settings.data_dir).open()


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = Settings.from_env()
        print("Starting bloomshop API server...")
        print(f"Data directory: {settings.data_dir}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        uvicorn.run(
            "bloomshop.api:create_app",
            factory=True,
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level=settings.log_level.lower(),
        )
        return 0

    except BloomshopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_seed(args: argparse.Namespace) -> int:
    """Load the demo catalog."""
    try:
        with get_database() as db:
            created = seed_products(db, force=args.force)

        if created:
            print(f"Seeded {created} products.")
        else:
            print("Products already exist. Use --force to reset and reseed.")
        return 0

    except BloomshopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products(args: argparse.Namespace) -> int:
    """List products."""
    try:
        with get_database() as db:
            page = Catalog(db).list_products(
                ProductFilter(
                    category=args.category,
                    status="all" if args.all else "active",
                ),
                page=1,
                limit=100,
            )

        if not page.items:
            print("No products found.")
            return 0

        if args.json:
            print(json.dumps([product_view(p) for p in page.items], indent=2))
        else:
            print(f"Products ({page.total}):")
            for product in page.items:
                print(format_product(product))
        return 0

    except BloomshopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_stock(args: argparse.Namespace) -> int:
    """Set or adjust a product's stock."""
    try:
        with get_database() as db:
            product = Catalog(db).adjust_stock(
                args.product_id, stock=args.set, delta=args.delta
            )

        print(f"Stock for {product.name}: {product.stock} [{product.stock_status()}]")
        return 0

    except BloomshopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders(args: argparse.Namespace) -> int:
    """List orders with the revenue summary."""
    try:
        with get_database() as db:
            listing = OrderLedger(db).get_all_orders(
                OrderFilter(status=args.status), page=1, limit=args.limit
            )

        orders = [d.order for d in listing.page.items]
        if not orders:
            print("No orders found.")
            return 0

        if args.json:
            data = {
                "orders": [o.to_dict() for o in orders],
                "summary": {
                    "count": listing.summary.count,
                    "total_revenue": str(listing.summary.total_revenue),
                    "average_order_value": str(listing.summary.average_order_value),
                },
            }
            print(json.dumps(data, indent=2))
        else:
            print(f"Orders ({len(orders)} of {listing.page.total}):")
            for order in orders:
                print(format_order(order))
            print()
            print(f"Revenue: {format_currency(listing.summary.total_revenue)}")
            print(f"Average order: {format_currency(listing.summary.average_order_value)}")
        return 0

    except BloomshopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="bloomshop",
        description="Flower shop backend: catalog, orders, addresses, reviews and wishlists.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Reload on code changes"
    )

    # seed
    seed_parser = subparsers.add_parser("seed", help="Load the demo catalog")
    seed_parser.add_argument(
        "--force", "-f", action="store_true", help="Erase all data before seeding"
    )

    # products
    products_parser = subparsers.add_parser("products", help="List products")
    products_parser.add_argument("--category", "-c", help="Only this category")
    products_parser.add_argument(
        "--all", "-a", action="store_true", help="Include discontinued products"
    )
    products_parser.add_argument(
        "--json", action="store_true", help="Output as JSON"
    )

    # stock
    stock_parser = subparsers.add_parser("stock", help="Set or adjust stock")
    stock_parser.add_argument("product_id", type=int, help="Product ID")
    stock_group = stock_parser.add_mutually_exclusive_group(required=True)
    stock_group.add_argument("--set", type=int, help="New absolute stock level")
    stock_group.add_argument("--delta", type=int, help="Relative change (may be negative)")

    # orders
    orders_parser = subparsers.add_parser("orders", help="List orders")
    orders_parser.add_argument("--status", "-s", help="Only orders in this status")
    orders_parser.add_argument(
        "--limit", "-n", type=int, default=20, help="Maximum orders to show (default: 20)"
    )
    orders_parser.add_argument(
        "--json", action="store_true", help="Output as JSON"
    )

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    commands = {
        "serve": cmd_serve,
        "seed": cmd_seed,
        "products": cmd_products,
        "stock": cmd_stock,
        "orders": cmd_orders,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
