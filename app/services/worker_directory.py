"""Worker lookups used to validate and suggest assignments.

Workers are read-only here: the directory never mutates worker or booking
rows.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import ValidationError
from app.database import unavailable_on_disconnect
from app.domain.booking_state import BookingStatus
from app.domain.records import BookingRecord
from app.models.booking import Booking
from app.models.user import Worker, worker_services

DIRECTORY_NAME = "worker_directory"

# Statuses that occupy a worker
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.ASSIGNED.value,
    BookingStatus.ACCEPTED.value,
    BookingStatus.IN_PROGRESS.value,
)


@dataclass(frozen=True)
class WorkerProfile:
    """Read-only view of a worker."""

    id: UUID
    full_name: str
    is_active: bool
    is_available: bool
    average_rating: float
    services: frozenset[UUID]

    def can_serve(self, service_id: UUID) -> bool:
        return service_id in self.services


@dataclass(frozen=True)
class CandidateWorker:
    """Worker eligible for a booking, with its current load."""

    profile: WorkerProfile
    active_bookings: int


def _day_window(moment: datetime) -> tuple[datetime, datetime]:
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


class WorkerDirectory:
    """Worker capability and availability lookups."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _services_for(self, db: AsyncSession, worker_ids: list[UUID]) -> dict[UUID, set[UUID]]:
        result = await db.execute(
            select(worker_services.c.worker_id, worker_services.c.service_id).where(
                worker_services.c.worker_id.in_(worker_ids)
            )
        )
        services: dict[UUID, set[UUID]] = {worker_id: set() for worker_id in worker_ids}
        for worker_id, service_id in result.all():
            services[worker_id].add(service_id)
        return services

    @staticmethod
    def _profile(worker: Worker, services: set[UUID]) -> WorkerProfile:
        return WorkerProfile(
            id=worker.id,
            full_name=worker.full_name,
            is_active=worker.is_active,
            is_available=worker.is_available,
            average_rating=worker.average_rating or 0.0,
            services=frozenset(services),
        )

    async def get_worker(self, worker_id: UUID) -> WorkerProfile | None:
        """Fetch a worker with its service capability."""
        async with unavailable_on_disconnect(DIRECTORY_NAME):
            async with self._session_factory() as db:
                worker = await db.get(Worker, worker_id)
                if worker is None:
                    return None
                services = await self._services_for(db, [worker.id])
                return self._profile(worker, services[worker.id])

    async def active_booking_count(self, worker_id: UUID) -> int:
        """Number of assigned/accepted/in-progress bookings held by a worker."""
        async with unavailable_on_disconnect(DIRECTORY_NAME):
            async with self._session_factory() as db:
                count = await db.scalar(
                    select(func.count())
                    .select_from(Booking)
                    .where(
                        Booking.worker_id == worker_id,
                        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    )
                )
                return count or 0

    async def has_conflicting_booking(
        self,
        worker_id: UUID,
        scheduled_at: datetime,
        exclude_booking_id: UUID | None = None,
    ) -> bool:
        """True if the worker already holds an active booking on the same day."""
        start, end = _day_window(scheduled_at)
        query = select(Booking.id).where(
            Booking.worker_id == worker_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.scheduled_at >= start,
            Booking.scheduled_at < end,
        )
        if exclude_booking_id is not None:
            query = query.where(Booking.id != exclude_booking_id)

        async with unavailable_on_disconnect(DIRECTORY_NAME):
            async with self._session_factory() as db:
                result = await db.execute(query.limit(1))
                return result.scalar_one_or_none() is not None

    async def validate_assignment(self, booking: BookingRecord, worker_id: UUID) -> WorkerProfile:
        """Check a worker may take a booking.

        Raises:
            ValidationError: Unknown or inactive worker, missing capability,
                or the worker is already booked that day
        """
        worker = await self.get_worker(worker_id)
        if worker is None:
            raise ValidationError(f"Worker with ID '{worker_id}' not found")
        if not worker.is_active:
            raise ValidationError(f"Worker {worker_id} is not active")
        if not worker.can_serve(booking.service_id):
            raise ValidationError(
                f"Worker {worker_id} is not qualified for service {booking.service_id}"
            )
        if await self.has_conflicting_booking(worker_id, booking.scheduled_at, booking.id):
            raise ValidationError(f"Worker {worker_id} is already booked for this date")
        return worker

    async def rank_candidates(self, booking: BookingRecord, limit: int = 10) -> list[CandidateWorker]:
        """Eligible workers for a booking, least loaded first, then best rated."""
        start, end = _day_window(booking.scheduled_at)

        load = (
            select(Booking.worker_id, func.count().label("active"))
            .where(
                Booking.worker_id.is_not(None),
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .group_by(Booking.worker_id)
            .subquery()
        )
        busy_that_day = select(Booking.worker_id).where(
            Booking.worker_id.is_not(None),
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.scheduled_at >= start,
            Booking.scheduled_at < end,
            Booking.id != booking.id,
        )
        active = func.coalesce(load.c.active, 0)
        query = (
            select(Worker, active)
            .join(worker_services, worker_services.c.worker_id == Worker.id)
            .outerjoin(load, load.c.worker_id == Worker.id)
            .where(
                worker_services.c.service_id == booking.service_id,
                Worker.is_active.is_(True),
                Worker.is_available.is_(True),
                Worker.id.not_in(busy_that_day),
            )
            .order_by(active.asc(), Worker.average_rating.desc(), Worker.id)
            .limit(limit)
        )
        if booking.worker_id is not None:
            query = query.where(Worker.id != booking.worker_id)

        async with unavailable_on_disconnect(DIRECTORY_NAME):
            async with self._session_factory() as db:
                rows = (await db.execute(query)).all()
                services = await self._services_for(db, [worker.id for worker, _ in rows])
                return [
                    CandidateWorker(
                        profile=self._profile(worker, services[worker.id]),
                        active_bookings=count,
                    )
                    for worker, count in rows
                ]
