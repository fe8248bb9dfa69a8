"""
Locust Load Test Suite

Users are identified by the X-User-Id header; the ids below must exist in the
users table (ORGANIZER_ID with the ORGANIZER role, CLIENT_IDS as clients).

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overselling
  locust -f locustfile.py --tags throughput   # Read throughput
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from datetime import datetime, timedelta, timezone

from locust import HttpUser, between, events, tag, task

ORGANIZER_ID = int(os.getenv("LOCUST_ORGANIZER_ID", "1"))
_low, _high = os.getenv("LOCUST_CLIENT_IDS", "2-1001").split("-")
CLIENT_IDS = range(int(_low), int(_high) + 1)

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None


def organizer_headers():
    return {"X-User-Id": str(ORGANIZER_ID)}


def random_client_headers():
    return {"X-User-Id": str(random.choice(CLIENT_IDS))}


def event_payload(title, capacity, days_ahead=30):
    start = datetime.now(timezone.utc) + timedelta(days=days_ahead)
    return {
        "title": title,
        "description": "Load test event",
        "location": "Test",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=3)).isoformat(),
        "capacity": capacity,
        "price": "25.00",
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"SETUP: organizer {ORGANIZER_ID}, clients {CLIENT_IDS.start}-{CLIENT_IDS.stop - 1}")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 tickets

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT SUM(ticket_quantity) FROM bookings
      WHERE event_id = X AND status IN ('PENDING', 'CONFIRMED');
    Should be <= 10, and events.available_tickets should be capacity minus that.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = random_client_headers()
        if CONCURRENCY_EVENT_ID:
            return
        resp = self.client.post(
            "/api/v1/events",
            json=event_payload("Concurrency Test Event", 10),
            headers=organizer_headers(),
        )
        if resp.status_code != 201:
            return
        event_id = resp.json()["id"]
        resp = self.client.post(
            f"/api/v1/events/{event_id}/status",
            json={"status": "PUBLISHED"},
            headers=organizer_headers(),
        )
        if resp.status_code == 200:
            globals()["CONCURRENCY_EVENT_ID"] = event_id
            print(f"\nCreated event {event_id} with 10 tickets\n")

    @tag("concurrency")
    @task
    def book_limited_tickets(self):
        """All users fight for the same 10 tickets."""
        if not CONCURRENCY_EVENT_ID:
            return

        with self.client.post(
            "/api/v1/bookings",
            json={"event_id": CONCURRENCY_EVENT_ID, "ticket_quantity": 1},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code in (400, 409):
                resp.success()  # Expected: sold out or per-user limit
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Read throughput

    Run: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events(self):
        page = random.randint(1, 5)
        resp = self.client.get(
            f"/api/v1/events?page={page}&page_size=20", name="/api/v1/events"
        )
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            self.client.get(
                f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}"
            )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = random_client_headers()

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        with self.client.post(
            "/api/v1/bookings",
            json={"event_id": 999999, "ticket_quantity": 1},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def zero_tickets(self):
        with self.client.post(
            "/api/v1/bookings",
            json={"event_id": 1, "ticket_quantity": 0},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def huge_quantity(self):
        with self.client.post(
            "/api/v1/bookings",
            json={"event_id": 1, "ticket_quantity": 999999},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 404, 409])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/bookings",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_user(self):
        with self.client.post(
            "/api/v1/bookings",
            json={"event_id": 1, "ticket_quantity": 1},
            catch_response=True,
        ) as resp:
            self._expect(resp, [401])

    @tag("edge")
    @task
    def illegal_transition(self):
        """Resources cannot jump from AVAILABLE straight to IN_USE."""
        with self.client.post(
            "/api/v1/resources/1/status",
            json={"status": "IN_USE"},
            headers=organizer_headers(),
            catch_response=True,
        ) as resp:
            self._expect(resp, [403, 404, 409])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing, some bookings and cancellations, rare event creation.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = random_client_headers()
        self.booking_ids = []

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events?page=1&page_size=20")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @task(10)
    def book_tickets(self):
        if not EVENT_IDS:
            return
        resp = self.client.post(
            "/api/v1/bookings",
            json={"event_id": random.choice(EVENT_IDS), "ticket_quantity": random.randint(1, 3)},
            headers=self.headers,
        )
        if resp.status_code == 201:
            self.booking_ids.append(resp.json()["id"])

    @task(3)
    def cancel_booking(self):
        if self.booking_ids:
            booking_id = self.booking_ids.pop()
            self.client.post(
                f"/api/v1/bookings/{booking_id}/cancel",
                json={"reason": "Change of plans"},
                headers=self.headers,
                name="/api/v1/bookings/{id}/cancel",
            )

    @task(2)
    def create_event(self):
        resp = self.client.post(
            "/api/v1/events",
            json=event_payload(
                f"Event {random.randint(1, 10000)}",
                random.randint(10, 500),
                days_ahead=random.randint(3, 90),
            ),
            headers=organizer_headers(),
        )
        if resp.status_code == 201:
            event_id = resp.json()["id"]
            publish = self.client.post(
                f"/api/v1/events/{event_id}/status",
                json={"status": "PUBLISHED"},
                headers=organizer_headers(),
                name="/api/v1/events/{id}/status",
            )
            if publish.status_code == 200:
                EVENT_IDS.append(event_id)
