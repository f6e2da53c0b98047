"""Database seeder for local development of the marketplace records API."""
import asyncio
import argparse
import random
import time
from marketplace.database import engine, async_session, Base
from marketplace.exceptions import DuplicateError
from marketplace.models import Category, Order, Product, User
from marketplace.services import notification_service, review_service, wishlist_service

CATEGORIES = ["vegetables", "fruits", "grains", "dairy", "herbs", "tubers"]
PRODUCE = ["tomato", "potato", "corn", "avocado", "coffee", "cassava", "onion",
           "plantain", "lulo", "cheese", "basil", "quinoa"]
COMMENTS = ["Fresh and tasty", "Arrived on time", "Good value", "Could be riper",
            "Excellent quality", None]

async def seed(small: bool = False):
    num_producers = 3 if small else 20
    num_consumers = 10 if small else 200
    products_per_producer = 4 if small else 15

    print(f"Seeding: {num_producers} producers, {num_consumers} consumers, "
          f"{num_producers * products_per_producer} products")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        categories = [Category(name=name) for name in CATEGORIES]
        session.add_all(categories)
        session.add(User(name="Administrator", email="admin@example.com", role="admin"))

        producers = [
            User(name=f"Farm {i}", email=f"producer_{i:03d}@example.com", role="producer")
            for i in range(num_producers)
        ]
        consumers = [
            User(name=f"Customer {i}", email=f"consumer_{i:04d}@example.com", role="consumer")
            for i in range(num_consumers)
        ]
        session.add_all(producers + consumers)
        await session.flush()
        print(f"  Created {len(producers) + len(consumers) + 1} users")

        products = []
        for producer in producers:
            for _ in range(products_per_producer):
                products.append(Product(
                    name=f"{random.choice(PRODUCE).title()} from {producer.name}",
                    description="Harvested this week.",
                    price=round(random.uniform(0.5, 30), 2),
                    stock=random.randint(0, 500),
                    unit=random.choice(["kg", "lb", "unit", "bunch"]),
                    producer_id=producer.id,
                    category_id=random.choice(categories).id,
                ))
        session.add_all(products)
        await session.flush()
        print(f"  Created {len(products)} products")

        orders = []
        for consumer in consumers:
            product = random.choice(products)
            orders.append((consumer.id, product, Order(
                consumer_id=consumer.id,
                producer_id=product.producer_id,
                total=product.price,
                status="delivered",
            )))
        session.add_all([order for _, _, order in orders])
        await session.commit()
        print(f"  Created {len(orders)} orders")

        # Domain records go through the services so every write uses the
        # same transaction path as the API.
        for consumer_id, product, order in orders:
            await review_service.create_review(
                session,
                order_id=order.id,
                product_id=product.id,
                consumer_id=consumer_id,
                producer_id=product.producer_id,
                rating=random.randint(1, 5),
                comment=random.choice(COMMENTS),
            )
            await notification_service.notify_order_status_change(
                session, consumer_id, order.id, "delivered"
            )
            await notification_service.notify_new_order(session, product.producer_id, order.id, 1)
            for wished in random.sample(products, k=min(3, len(products))):
                try:
                    await wishlist_service.add(session, consumer_id, wished.id)
                except DuplicateError:
                    pass

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Seed the marketplace database")
    parser.add_argument("--small", action="store_true", help="Use small dataset")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
