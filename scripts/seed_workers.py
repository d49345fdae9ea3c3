#!/usr/bin/env python3
"""Create a customer and a few workers qualified for one service."""

import argparse
import asyncio
import sys
from uuid import UUID, uuid4

# Add parent directory to path for imports
sys.path.insert(0, "/app")

from app.database import AsyncSessionLocal
from app.models.user import Customer, Worker, worker_services

WORKERS = [
    ("Ravi", "Kumar", 4.8),
    ("Anita", "Sharma", 4.5),
    ("Imran", "Khan", 4.2),
]


async def seed(service_id: UUID, city: str) -> None:
    """Insert a customer and workers, printing their IDs."""
    async with AsyncSessionLocal() as session:
        customer = Customer(id=uuid4(), name="Demo Customer", mobile_number="9000000000")
        session.add(customer)

        workers = [
            Worker(id=uuid4(), first_name=first, last_name=last, city=city, average_rating=rating)
            for first, last, rating in WORKERS
        ]
        session.add_all(workers)
        await session.flush()

        await session.execute(
            worker_services.insert(),
            [{"worker_id": worker.id, "service_id": service_id} for worker in workers],
        )
        await session.commit()

        print(f"Service:  {service_id}")
        print(f"Customer: {customer.id}")
        for worker in workers:
            print(f"Worker:   {worker.id} ({worker.full_name}, rating {worker.average_rating})")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo customer and workers")
    parser.add_argument("--service-id", type=UUID, default=uuid4(), help="Service UUID")
    parser.add_argument("--city", default="Bengaluru", help="Worker city")
    args = parser.parse_args()

    asyncio.run(seed(service_id=args.service_id, city=args.city))
