import pytest

from app.core.exceptions import ValidationError
from app.domain.records import ApplyResult, Intent
from app.services.ledger_service import LedgerService


def _credit_intents(booking):
    return [intent for intent in booking.intent_log if intent.kind in ("creditWallet", "creditCoins")]


def test_apply_twice_credits_once(run_in_world):
    async def scenario(world):
        booking = await world.booking_in("completed", price=750)
        ledger = LedgerService()
        wallet_intent, coin_intent = _credit_intents(booking)

        async with world.session_factory() as db:
            assert await ledger.apply_intent(db, wallet_intent) is ApplyResult.APPLIED
            assert await ledger.apply_intent(db, coin_intent) is ApplyResult.APPLIED
            await db.commit()

        async with world.session_factory() as db:
            assert await ledger.apply_intent(db, wallet_intent) is ApplyResult.DUPLICATE
            assert await ledger.apply_intent(db, coin_intent) is ApplyResult.DUPLICATE
            await db.commit()

        async with world.session_factory() as db:
            assert await ledger.wallet_balance(db, world.workers["ravi"]) == 750
            assert await ledger.coin_balance(db, world.customer_id) == 5
            entries = await ledger.list_wallet_entries(db, world.workers["ravi"])
            assert [entry.source_intent_id for entry in entries] == [wallet_intent.intent_id]
            assert entries[0].booking_id == booking.id
            coins = await ledger.list_coin_entries(db, world.customer_id)
            assert [coin.amount for coin in coins] == [5]

    run_in_world(scenario)


def test_two_completed_bookings_accumulate(run_in_world):
    async def scenario(world):
        ledger = LedgerService()
        first = await world.booking_in("completed", price=300)
        second = await world.booking_in("completed", price=200)

        async with world.session_factory() as db:
            for intent in _credit_intents(first) + _credit_intents(second):
                await ledger.apply_intent(db, intent)
            await db.commit()

            assert await ledger.wallet_balance(db, world.workers["ravi"]) == 500
            assert await ledger.coin_balance(db, world.customer_id) == 10

    run_in_world(scenario)


def test_rejects_non_positive_amount_and_unknown_kind(run_in_world):
    async def scenario(world):
        ledger = LedgerService()
        booking = await world.booking_in("completed")
        wallet_intent = _credit_intents(booking)[0]
        notify_intent = booking.intent_log[-1]

        bad = Intent(
            intent_id="f" * 64,
            booking_id=booking.id,
            seq=99,
            kind="creditWallet",
            target="worker",
            recipient_id=world.workers["ravi"],
            payload={"amount": 0},
            booking_version=wallet_intent.booking_version,
        )

        async with world.session_factory() as db:
            with pytest.raises(ValidationError):
                await ledger.apply_intent(db, bad)
            with pytest.raises(ValidationError):
                await ledger.apply_intent(db, notify_intent)

            assert await ledger.wallet_balance(db, world.workers["ravi"]) == 0

    run_in_world(scenario)
