"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overselling
  locust -f locustfile.py --tags queue        # Test admission bound
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
import uuid
from locust import HttpUser, task, between, tag, events
from datetime import datetime, timezone, timedelta

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None
CONCURRENCY_TICKETS = 10


def event_payload(title: str, total_tickets: int, days_ahead: int = 30) -> dict:
    start = datetime.now(timezone.utc) + timedelta(days=days_ahead)
    return {
        "title": title,
        "description": "Load test event",
        "location": "Test",
        "price": "25.00",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=3)).isoformat(),
        "total_tickets": total_tickets,
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"SETUP: concurrency event gets {CONCURRENCY_TICKETS} tickets")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 tickets

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM tickets WHERE event_id = X AND status IN ('active', 'used');
    Should be <= 10, and events.available_tickets should be 10 minus that count
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        if not CONCURRENCY_EVENT_ID:
            resp = self.client.post(
                "/api/v1/events/",
                json=event_payload("Concurrency Test Event", CONCURRENCY_TICKETS),
            )
            if resp.status_code == 201:
                globals()["CONCURRENCY_EVENT_ID"] = resp.json()["id"]
                print(f"\nCreated event {CONCURRENCY_EVENT_ID} with {CONCURRENCY_TICKETS} tickets\n")
        self.ticket_ids = []

    @tag("concurrency")
    @task(5)
    def buy_limited_tickets(self):
        """All users fight for the same 10 tickets."""
        if not CONCURRENCY_EVENT_ID:
            return

        with self.client.post(
            "/api/v1/tickets/",
            json={"event_id": CONCURRENCY_EVENT_ID},
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                self.ticket_ids.append(resp.json()["id"])
                resp.success()
            elif resp.status_code in (409, 503):
                resp.success()  # Expected: sold out, or lock contention after retries
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("concurrency")
    @task(1)
    def cancel_some(self):
        """Cancellations put tickets back while others are buying."""
        if not self.ticket_ids:
            return

        ticket_id = self.ticket_ids.pop()
        with self.client.post(
            f"/api/v1/tickets/{ticket_id}/cancel",
            name="/api/v1/tickets/{id}/cancel",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 503):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class QueueUser(HttpUser):
    """
    TEST 2: Admission queue - many sessions, bounded active pool

    Run: locust -f locustfile.py --tags queue -u 300 -r 50 --run-time 60s
    (enable the queue first: POST /api/v1/admin/queue/enable)

    Watch GET /api/v1/admin/queue/stats: total_active never exceeds
    max_active_users, waiting positions stay 1..N.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = {"X-Session-ID": uuid.uuid4().hex}
        self.client.post("/api/v1/queue/join", headers=self.headers)

    @tag("queue")
    @task(10)
    def poll_status(self):
        self.client.get("/api/v1/queue/status", headers=self.headers)

    @tag("queue")
    @task(1)
    def leave_and_rejoin(self):
        self.client.delete("/api/v1/queue/leave", headers=self.headers)
        self.headers = {"X-Session-ID": uuid.uuid4().hex}
        self.client.post("/api/v1/queue/join", headers=self.headers)

    @tag("queue")
    @task(1)
    def stats(self):
        self.client.get("/api/v1/admin/queue/stats")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        """Buy for a non-existent event."""
        with self.client.post("/api/v1/tickets/", json={"event_id": 999999}, catch_response=True) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def bad_discount(self):
        with self.client.post(
            "/api/v1/tickets/",
            json={"event_id": 1, "discount_percentage": 250},
            catch_response=True,
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def shrink_to_zero(self):
        with self.client.put(
            "/api/v1/events/1/capacity",
            json={"total_tickets": 0},
            name="/api/v1/events/{id}/capacity",
            catch_response=True,
        ) as resp:
            self._expect(resp, [404, 422])

    @tag("edge")
    @task
    def join_without_session(self):
        with self.client.post("/api/v1/queue/join", catch_response=True) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/tickets/", data="not json at all", catch_response=True) as resp:
            self._expect(resp, [400, 422])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly viewing events
      - Some purchases and cancellations
      - Rare creates
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.ticket_ids = []

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @task(10)
    def buy_ticket(self):
        if EVENT_IDS:
            resp = self.client.post(
                "/api/v1/tickets/",
                json={"event_id": random.choice(EVENT_IDS), "discount_percentage": random.choice([0, 0, 10, 25])},
            )
            if resp.status_code == 201:
                self.ticket_ids.append(resp.json()["id"])

    @task(2)
    def cancel_ticket(self):
        if self.ticket_ids:
            self.client.post(
                f"/api/v1/tickets/{self.ticket_ids.pop(0)}/cancel",
                name="/api/v1/tickets/{id}/cancel",
            )

    @task(3)
    def create_event(self):
        """Rare: create new event."""
        resp = self.client.post(
            "/api/v1/events/",
            json=event_payload(
                f"Event {random.randint(1, 10000)}",
                random.randint(10, 500),
                days_ahead=random.randint(1, 90),
            ),
        )
        if resp.status_code == 201:
            EVENT_IDS.append(resp.json()["id"])

    @task(1)
    def health_check(self):
        self.client.get("/health")
