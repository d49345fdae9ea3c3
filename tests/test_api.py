from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_db, get_session_factory, get_transition_service
from app.core.exceptions import ConflictError, DependencyUnavailable
from app.main import app
from conftest import build_world, sqlite_url


class ClientWorld:
    def __init__(self, client, world):
        self.client = client
        self.world = world
        self._day = 0

    def create_booking(self, price=500):
        self._day += 1
        response = self.client.post(
            "/api/v1/bookings/",
            json={
                "customerId": str(self.world.customer_id),
                "serviceId": str(self.world.service_id),
                "price": price,
                "scheduledAt": f"2026-12-{self._day:02d}T10:00:00",
            },
        )
        assert response.status_code == 201, response.text
        return response.json()

    def transition(self, booking_id, action, role, actor_id=None, **payload):
        body = {"action": action, "actorRole": role, "payload": payload}
        if actor_id is not None:
            body["actorId"] = str(actor_id)
        return self.client.post(f"/api/v1/bookings/{booking_id}/transition", json=body)


@pytest.fixture
def api(tmp_path):
    with TestClient(app) as client:
        world = client.portal.call(build_world, sqlite_url(tmp_path))

        async def override_get_db():
            async with world.session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        app.dependency_overrides[get_session_factory] = lambda: world.session_factory
        app.dependency_overrides[get_db] = override_get_db
        try:
            yield ClientWorld(client, world)
        finally:
            app.dependency_overrides.clear()
            client.portal.call(world.engine.dispose)


def test_health_ok(api):
    response = api.client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_and_get_booking(api):
    booking = api.create_booking(price=1200)
    assert booking["status"] == "pending"
    assert booking["version"] == 1
    assert booking["workerId"] is None
    assert booking["bookingNumber"].startswith("HS-")

    response = api.client.get(f"/api/v1/bookings/{booking['id']}")
    assert response.status_code == 200
    assert response.json()["price"] == 1200
    assert response.json()["intents"] == []


def test_create_booking_rejects_non_positive_price(api):
    response = api.client.post(
        "/api/v1/bookings/",
        json={
            "customerId": str(uuid4()),
            "serviceId": str(uuid4()),
            "price": 0,
            "scheduledAt": "2026-12-01T10:00:00",
        },
    )
    assert response.status_code == 422


def test_unknown_booking_is_404(api):
    response = api.transition(uuid4(), "cancel", "admin")
    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"

    assert api.client.get(f"/api/v1/bookings/{uuid4()}").status_code == 404


def test_full_lifecycle_credits_and_notifies(api):
    world = api.world
    ravi = world.workers["ravi"]
    booking = api.create_booking(price=800)

    assigned = api.transition(booking["id"], "assign", "admin", workerId=str(ravi))
    assert assigned.status_code == 200, assigned.text
    body = assigned.json()
    assert body["status"] == "assigned"
    assert body["workerId"] == str(ravi)
    assert body["version"] == 2
    assert [intent["kind"] for intent in body["intents"]] == ["notify"]

    wrong_worker = api.transition(booking["id"], "accept", "worker", world.workers["anita"])
    assert wrong_worker.status_code == 403
    assert wrong_worker.json()["error"] == "Forbidden"

    for action in ("accept", "start"):
        assert api.transition(booking["id"], action, "worker", ravi).status_code == 200

    completed = api.transition(booking["id"], "complete", "worker", ravi)
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"
    assert completed.json()["version"] == 5
    assert [intent["kind"] for intent in completed.json()["intents"]] == ["creditWallet", "creditCoins", "notify"]

    # Post-commit hook applied the intents
    wallet = api.client.get(f"/api/v1/wallets/{ravi}").json()
    assert wallet["balance"] == 800
    assert len(wallet["entries"]) == 1
    coins = api.client.get(f"/api/v1/coins/{world.customer_id}").json()
    assert coins["balance"] == 5

    stored = api.client.get(f"/api/v1/bookings/{booking['id']}").json()
    applied = {intent["kind"]: intent["appliedBy"] for intent in stored["intents"]}
    assert applied["creditWallet"] == ["ledger"]
    assert applied["notify"] == ["notifier"]

    customer_feed = api.client.get(f"/api/v1/notifications/{world.customer_id}").json()
    assert {n["title"] for n in customer_feed["notifications"]} == {
        "Booking Accepted",
        "Booking Started",
        "Booking Completed",
    }
    assert customer_feed["unread_count"] == 3

    terminal = api.transition(booking["id"], "cancel", "admin")
    assert terminal.status_code == 422
    assert terminal.json()["error"] == "TerminalState"


def test_invalid_transition_and_validation_errors(api):
    booking = api.create_booking()

    invalid = api.transition(booking["id"], "start", "worker", api.world.workers["ravi"])
    assert invalid.status_code == 422
    assert invalid.json()["error"] == "InvalidTransition"

    unknown = api.transition(booking["id"], "teleport", "admin")
    assert unknown.status_code == 422
    assert unknown.json()["error"] == "ValidationFailed"

    missing_worker = api.transition(booking["id"], "assign", "admin")
    assert missing_worker.status_code == 422
    assert missing_worker.json()["error"] == "ValidationFailed"

    unchanged = api.client.get(f"/api/v1/bookings/{booking['id']}").json()
    assert unchanged["version"] == 1


@pytest.mark.parametrize(
    "error, status_code, code",
    [
        (ConflictError(), 409, "Conflict"),
        (DependencyUnavailable("booking_store", "connection refused"), 503, "DependencyUnavailable"),
    ],
)
def test_engine_errors_map_to_status_codes(api, error, status_code, code):
    class FailingEngine:
        async def request_transition(self, **kwargs):
            raise error

    app.dependency_overrides[get_transition_service] = lambda: FailingEngine()

    response = api.transition(uuid4(), "cancel", "admin")
    assert response.status_code == status_code
    assert response.json()["error"] == code


def test_candidates_least_loaded_first(api):
    world = api.world
    first = api.create_booking()
    second = api.create_booking()

    ranked = api.client.get(f"/api/v1/bookings/{second['id']}/candidates").json()
    assert [c["workerId"] for c in ranked] == [
        str(world.workers["ravi"]),
        str(world.workers["anita"]),
        str(world.workers["imran"]),
    ]

    assert api.transition(first["id"], "assign", "admin", workerId=str(world.workers["ravi"])).status_code == 200

    ranked = api.client.get(f"/api/v1/bookings/{second['id']}/candidates").json()
    assert [c["workerId"] for c in ranked][-1] == str(world.workers["ravi"])
    assert ranked[-1]["activeBookings"] == 1

    # Reassign suggestions leave out the current worker
    ranked = api.client.get(f"/api/v1/bookings/{first['id']}/candidates").json()
    assert str(world.workers["ravi"]) not in [c["workerId"] for c in ranked]


def test_mark_notification_read(api):
    world = api.world
    booking = api.create_booking()
    api.transition(booking["id"], "assign", "admin", workerId=str(world.workers["anita"]))

    feed = api.client.get(f"/api/v1/notifications/{world.workers['anita']}").json()
    assert [n["title"] for n in feed["notifications"]] == ["New Job Assigned"]
    notification_id = feed["notifications"][0]["id"]

    response = api.client.post(f"/api/v1/notifications/{notification_id}/read")
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    feed = api.client.get(f"/api/v1/notifications/{world.workers['anita']}").json()
    assert feed["unread_count"] == 0

    assert api.client.post(f"/api/v1/notifications/{uuid4()}/read").status_code == 404


def test_customer_cancel_reaches_admin_feed(api):
    world = api.world
    booking = api.create_booking()

    response = api.transition(booking["id"], "cancel", "customer", world.customer_id, reason="Plans changed")
    assert response.status_code == 200
    assert response.json()["workerId"] is None

    feed = api.client.get("/api/v1/notifications/admin").json()
    assert [n["title"] for n in feed["notifications"]] == ["Booking Cancelled"]
