#!/usr/bin/env python3
"""
Seed the analytics schema with a small POS catalog and order history.

Usage:
    python scripts/seed_data.py [--orders 200]

Run ``alembic upgrade head`` first.
"""

import argparse
import asyncio
import os
import random
import sys
from datetime import datetime, timedelta, timezone
from uuid import uuid4

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from analytics_service.infrastructure.database.connection import get_db_session
from analytics_service.infrastructure.database.models import Category, Item, Order, OrderItem

CATEGORIES = [
    {"id": "cat-beverages", "name": "Beverages"},
    {"id": "cat-bakery", "name": "Bakery"},
    {"id": "cat-snacks", "name": "Snacks"},
    {"id": "cat-dairy", "name": "Dairy"},
]

ITEMS = [
    {"id": "item-001", "name": "Espresso", "category_id": "cat-beverages", "price": 2.50},
    {"id": "item-002", "name": "Cappuccino", "category_id": "cat-beverages", "price": 3.80},
    {"id": "item-003", "name": "Orange Juice", "category_id": "cat-beverages", "price": 3.20},
    {"id": "item-004", "name": "Croissant", "category_id": "cat-bakery", "price": 2.20},
    {"id": "item-005", "name": "Blueberry Muffin", "category_id": "cat-bakery", "price": 2.90},
    {"id": "item-006", "name": "Sourdough Loaf", "category_id": "cat-bakery", "price": 5.50},
    {"id": "item-007", "name": "Sea Salt Crisps", "category_id": "cat-snacks", "price": 1.80},
    {"id": "item-008", "name": "Granola Bar", "category_id": "cat-snacks", "price": 1.50},
    {"id": "item-009", "name": "Greek Yogurt", "category_id": "cat-dairy", "price": 2.70},
    {"id": "item-010", "name": "Milk 1L", "category_id": "cat-dairy", "price": 1.40},
]

CUSTOMERS = ["cust-001", "cust-002", "cust-003", "cust-004", "cust-005"]

# Baskets that show up together often enough to produce association rules
BASKET_TEMPLATES = [
    ["item-001", "item-004"],
    ["item-002", "item-005"],
    ["item-002", "item-004"],
    ["item-003", "item-008"],
    ["item-006", "item-010"],
    ["item-009", "item-008"],
]


def build_orders(count: int, seed: int) -> list[dict]:
    """Generate order documents spread over the last 60 days."""
    rng = random.Random(seed)
    prices = {item["id"]: item["price"] for item in ITEMS}
    names = {item["id"]: item["name"] for item in ITEMS}
    now = datetime.now(timezone.utc).replace(tzinfo=None)

    orders = []
    for _ in range(count):
        basket = list(rng.choice(BASKET_TEMPLATES))
        if rng.random() < 0.4:
            extra = rng.choice(ITEMS)["id"]
            if extra not in basket:
                basket.append(extra)

        lines = [
            {"item_id": item_id, "item_name": names[item_id], "quantity": rng.randint(1, 3)}
            for item_id in basket
        ]
        total = sum(prices[line["item_id"]] * line["quantity"] for line in lines)
        orders.append({
            "id": str(uuid4()),
            # Some walk-in sales carry no customer
            "customer_id": rng.choice(CUSTOMERS) if rng.random() < 0.85 else None,
            "total_amount": round(total, 2),
            "created_at": now - timedelta(days=rng.randint(0, 59), minutes=rng.randint(0, 1439)),
            "lines": lines,
        })
    return orders


async def seed(order_count: int, seed: int) -> None:
    orders = build_orders(order_count, seed)

    async with get_db_session() as session:
        session.add_all(Category(**category) for category in CATEGORIES)
        session.add_all(Item(**item) for item in ITEMS)
        for order in orders:
            session.add(
                Order(
                    id=order["id"],
                    customer_id=order["customer_id"],
                    total_amount=order["total_amount"],
                    created_at=order["created_at"],
                    items=[OrderItem(**line) for line in order["lines"]],
                )
            )

    print(f"Created {len(CATEGORIES)} categories")
    print(f"Created {len(ITEMS)} items")
    print(f"Created {len(orders)} orders")


async def main():
    """Run seeding."""
    parser = argparse.ArgumentParser(description="Seed POS analytics data")
    parser.add_argument("--orders", type=int, default=200, help="Number of orders to create")
    parser.add_argument("--seed", type=int, default=7, help="Random seed")
    args = parser.parse_args()

    print("Seeding database with test data...")
    print("=" * 50)

    await seed(args.orders, args.seed)

    print("=" * 50)
    print("Seeding complete!")
    print("")
    print("Run POST /api/v1/analytics/regenerate to build customer summaries.")


if __name__ == "__main__":
    asyncio.run(main())
