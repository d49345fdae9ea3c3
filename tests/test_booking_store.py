import dataclasses

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.database import create_engine_for
from app.services.booking_store import CasOutcome


def test_stale_version_never_mutates(run_in_world):
    async def scenario(world):
        booking = await world.booking_in("assigned")
        cancelled = dataclasses.replace(booking, status="cancelled", worker_id=None)

        outcome = await world.store.compare_and_swap(booking.id, booking.version - 1, cancelled)

        assert outcome is CasOutcome.VERSION_CONFLICT
        assert await world.store.get(booking.id) == booking

    run_in_world(scenario)


def test_cas_on_missing_booking_reports_not_found(run_in_world):
    async def scenario(world):
        booking = await world.pending_booking()
        ghost = dataclasses.replace(booking, id=world.customer_id)

        assert await world.store.compare_and_swap(ghost.id, 1, ghost) is CasOutcome.NOT_FOUND

    run_in_world(scenario)


def test_create_rejects_non_positive_price(run_in_world):
    async def scenario(world):
        with pytest.raises(ValidationError):
            await world.pending_booking(price=0)

    run_in_world(scenario)


def test_booking_intents_in_log_order(run_in_world):
    async def scenario(world):
        booking = await world.booking_in("completed")
        await world.booking_in("assigned", worker="anita")

        intents = await world.store.booking_intents(booking.id)

        assert [intent.seq for intent in intents] == [0, 1, 2, 3, 4, 5]
        assert [intent.kind for intent in intents] == [
            "notify",
            "notify",
            "notify",
            "creditWallet",
            "creditCoins",
            "notify",
        ]
        assert all(intent.booking_id == booking.id for intent in intents)
        assert await world.store.booking_intents(world.customer_id) == []

    run_in_world(scenario)


def test_mark_applied_is_idempotent(run_in_world):
    async def scenario(world):
        booking = await world.booking_in("completed")
        wallet = next(intent for intent in booking.intent_log if intent.kind == "creditWallet")

        assert await world.store.mark_applied(wallet.intent_id, "ledger") is True
        assert await world.store.mark_applied(wallet.intent_id, "ledger") is False
        assert await world.store.mark_applied(wallet.intent_id, "notifier") is True

        stored = await world.store.get(booking.id)
        applied = {intent.intent_id: intent.applied_by for intent in stored.intent_log}
        assert applied[wallet.intent_id] == frozenset({"ledger", "notifier"})
        assert stored.version == booking.version

        pending = await world.store.pending_intents("ledger", ("creditWallet", "creditCoins"))
        assert [intent.kind for intent in pending] == ["creditCoins"]

    run_in_world(scenario)


def test_mark_applied_unknown_intent(run_in_world):
    async def scenario(world):
        with pytest.raises(NotFoundError):
            await world.store.mark_applied("0" * 64, "ledger")

    run_in_world(scenario)


@pytest.mark.parametrize("url", ["sqlite+aiosqlite://", "sqlite+aiosqlite:///:memory:"])
def test_in_memory_sqlite_is_rejected(url):
    with pytest.raises(ValueError):
        create_engine_for(url)
