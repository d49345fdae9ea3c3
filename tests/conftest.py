import asyncio
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID, uuid4

import pytest

os.environ.setdefault(
    "DATABASE_URL_OVERRIDE", f"sqlite+aiosqlite:///{os.path.join(tempfile.mkdtemp(), 'homeserv.db')}"
)
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("FCM_SERVER_KEY", "")

from app.database import create_engine_for, create_session_factory, init_db
from app.models.user import Customer, Worker, worker_services
from app.services.booking_store import SqlBookingStore
from app.services.transition_service import BookingTransitionService
from app.services.worker_directory import WorkerDirectory

FIRST_DAY = datetime(2026, 11, 2, 10, 0)


@dataclass
class World:
    """Seeded SQLite database plus the services under test."""

    engine: object
    session_factory: object
    service_id: UUID
    other_service_id: UUID
    customer_id: UUID
    workers: dict[str, UUID]
    store: SqlBookingStore = None
    directory: WorkerDirectory = None
    _next_day: int = field(default=0)

    def __post_init__(self) -> None:
        self.store = SqlBookingStore(self.session_factory)
        self.directory = WorkerDirectory(self.session_factory)

    def engine_service(self, store=None, reward_coins: int = 5) -> BookingTransitionService:
        return BookingTransitionService(store or self.store, self.directory, reward_coins=reward_coins)

    def next_slot(self) -> datetime:
        slot = FIRST_DAY + timedelta(days=self._next_day)
        self._next_day += 1
        return slot

    async def pending_booking(self, price: int = 500, scheduled_at: datetime | None = None):
        return await self.store.create(
            customer_id=self.customer_id,
            service_id=self.service_id,
            price=price,
            scheduled_at=scheduled_at or self.next_slot(),
        )

    async def booking_in(self, status: str, worker: str = "ravi", price: int = 500):
        """Drive a fresh booking to ``status`` through real transitions."""
        engine = self.engine_service()
        record = await self.pending_booking(price=price)
        worker_id = self.workers[worker]
        steps = {
            "pending": [],
            "assigned": [("assign", "admin", None, {"worker_id": worker_id})],
            "accepted": [
                ("assign", "admin", None, {"worker_id": worker_id}),
                ("accept", "worker", worker_id, {}),
            ],
            "in_progress": [
                ("assign", "admin", None, {"worker_id": worker_id}),
                ("accept", "worker", worker_id, {}),
                ("start", "worker", worker_id, {}),
            ],
            "completed": [
                ("assign", "admin", None, {"worker_id": worker_id}),
                ("accept", "worker", worker_id, {}),
                ("start", "worker", worker_id, {}),
                ("complete", "worker", worker_id, {}),
            ],
            "cancelled": [("cancel", "customer", self.customer_id, {"reason": "Plans changed"})],
            "rejected": [
                ("assign", "admin", None, {"worker_id": worker_id}),
                ("reject", "worker", worker_id, {"reason": "Too far"}),
            ],
        }[status]
        for action, role, actor_id, payload in steps:
            await engine.request_transition(record.id, role, action, payload, actor_id=actor_id)
        return await self.store.get(record.id)


def sqlite_url(directory) -> str:
    return f"sqlite+aiosqlite:///{os.path.join(directory, 'bookings.db')}"


async def build_world(database_url: str) -> World:
    engine = create_engine_for(database_url)
    await init_db(engine)
    session_factory = create_session_factory(engine)

    service_id, other_service_id = uuid4(), uuid4()
    customer_id = uuid4()
    workers = {
        "ravi": Worker(id=uuid4(), first_name="Ravi", last_name="Kumar", average_rating=4.8, fcm_token="tok-ravi"),
        "anita": Worker(id=uuid4(), first_name="Anita", last_name="Sharma", average_rating=4.5),
        "imran": Worker(id=uuid4(), first_name="Imran", last_name="Khan", average_rating=4.2),
        "inactive": Worker(id=uuid4(), first_name="Suresh", average_rating=5.0, is_active=False),
        "plumber": Worker(id=uuid4(), first_name="Manoj", average_rating=4.9),
    }

    async with session_factory() as db:
        db.add(Customer(id=customer_id, name="Priya", fcm_token="tok-priya"))
        db.add_all(workers.values())
        await db.flush()
        await db.execute(
            worker_services.insert(),
            [
                {"worker_id": worker.id, "service_id": service_id}
                for name, worker in workers.items()
                if name != "plumber"
            ]
            + [{"worker_id": workers["plumber"].id, "service_id": other_service_id}],
        )
        await db.commit()

    return World(
        engine=engine,
        session_factory=session_factory,
        service_id=service_id,
        other_service_id=other_service_id,
        customer_id=customer_id,
        workers={name: worker.id for name, worker in workers.items()},
    )


@pytest.fixture
def run_in_world(tmp_path):
    """Run ``scenario(world)`` against a freshly seeded database file."""

    def runner(scenario):
        async def main():
            world = await build_world(sqlite_url(tmp_path))
            try:
                return await scenario(world)
            finally:
                await world.engine.dispose()

        return asyncio.run(main())

    return runner
