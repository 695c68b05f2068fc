"""Demo catalog for local development."""

import logging

from .catalog import Catalog
from .store import TABLES, Database

logger = logging.getLogger(__name__)

DEMO_PRODUCTS = [
    {
        "name": "Red Rose Bouquet",
        "description": "A dozen long-stemmed red roses wrapped in kraft paper.",
        "price": "29.99",
        "original_price": "39.99",
        "stock": 50,
        "category": "roses",
        "is_featured": True,
        "image": "/images/red-rose-bouquet.jpg",
    },
    {
        "name": "Blush Garden Roses",
        "description": "Soft pink garden roses with eucalyptus.",
        "price": "44.50",
        "stock": 8,
        "category": "roses",
        "image": "/images/blush-garden-roses.jpg",
    },
    {
        "name": "Sunflower Sunshine",
        "description": "Bright sunflowers arranged in a glass vase.",
        "price": "34.00",
        "stock": 30,
        "category": "sunflowers",
        "is_featured": True,
        "image": "/images/sunflower-sunshine.jpg",
    },
    {
        "name": "Wildflower Medley",
        "description": "Seasonal mixed wildflowers, no two alike.",
        "price": "24.99",
        "original_price": "29.99",
        "stock": 25,
        "category": "mixed",
        "image": "/images/wildflower-medley.jpg",
    },
    {
        "name": "Stargazer Lilies",
        "description": "Fragrant pink stargazer lilies.",
        "price": "39.99",
        "stock": 15,
        "category": "lilies",
        "is_featured": True,
        "image": "/images/stargazer-lilies.jpg",
    },
    {
        "name": "Spring Tulips",
        "description": "Twenty tulips in assorted spring colours.",
        "price": "27.50",
        "stock": 0,
        "category": "tulips",
        "image": "/images/spring-tulips.jpg",
    },
]


def seed_products(db: Database, force: bool = False) -> int:
    """
    Insert the demo catalog.

    Does nothing when products already exist unless force is set, in which
    case every table is emptied first. Returns the number of products created.
    """
    if force:
        with db.transaction() as txn:
            for table in TABLES:
                for row in txn.rows(table):
                    txn.delete(table, row["id"])
        logger.warning("Cleared all data before seeding")
    else:
        with db.snapshot() as txn:
            if txn.rows("products"):
                logger.info("Products already present, skipping seed")
                return 0

    catalog = Catalog(db)
    for data in DEMO_PRODUCTS:
        catalog.create_product(data)
    logger.info("Seeded %d products", len(DEMO_PRODUCTS))
    return len(DEMO_PRODUCTS)
