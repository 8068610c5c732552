"""
Gym Back Office Load Testing with Locust

Issue a token first (tokens are not handed out over HTTP):
    cd backend && python -m flask users token --username admin

Then run with:
    GYM_TOKEN=<token> locust -f tests/stress/locustfile.py --host http://127.0.0.1:5000

Or headless:
    GYM_TOKEN=<token> locust -f tests/stress/locustfile.py --host http://127.0.0.1:5000 \
           --users 20 --spawn-rate 4 --run-time 60s --headless

Optional:
    GYM_ITEM_IDS=1,2,3     items the sales users sell from (default: first page of /items)
    GYM_MEMBER_IDS=2,3,4   members the subscription users churn (default: none, task skipped)

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Unexpected status rate < 1% (409 insufficient_stock / already_subscribed are expected)
"""

import os
import random
from typing import Dict, List, Optional

from locust import HttpUser, task, between, events


# =============================================================================
# CONFIGURATION
# =============================================================================

TOKEN = os.environ.get("GYM_TOKEN", "")


def _int_list(name: str) -> List[int]:
    raw = os.environ.get(name, "")
    return [int(part) for part in raw.split(",") if part.strip()]


ITEM_IDS = _int_list("GYM_ITEM_IDS")
MEMBER_IDS = _int_list("GYM_MEMBER_IDS")

WRITE_ENDPOINTS = {"sales/create", "subscriptions/subscribe", "subscriptions/cancel", "inventory/adjust"}


# =============================================================================
# METRICS TRACKING
# =============================================================================

class EndpointStats:
    """Per-endpoint counters, fed from locust's request event."""

    def __init__(self):
        self.times: Dict[str, List[float]] = {}
        self.errors: Dict[str, int] = {}

    def record(self, name: str, response_time: float, failed: bool):
        self.times.setdefault(name, []).append(response_time)
        self.errors.setdefault(name, 0)
        if failed:
            self.errors[name] += 1

    def p95(self, name: str) -> float:
        times = sorted(self.times[name])
        return times[min(int(len(times) * 0.95), len(times) - 1)]


stats = EndpointStats()


@events.request.add_listener
def on_request(name, response_time, exception, **kwargs):
    stats.record(name, response_time, exception is not None)


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class GymUser(HttpUser):
    """Base user; every request carries the shared bearer token."""
    wait_time = between(0.5, 2)
    abstract = True

    def on_start(self):
        if not TOKEN:
            raise RuntimeError("Set GYM_TOKEN to a token issued with `flask users token --username <name>`")
        self.client.headers.update({"Authorization": f"Bearer {TOKEN}"})


class FrontDeskUser(GymUser):
    """Reads: catalogue, plans, stock levels."""
    weight = 3

    @task(5)
    def list_items(self):
        self.client.get("/api/inventory/items", params={"page_size": 50}, name="inventory/items")

    @task(2)
    def low_stock(self):
        self.client.get("/api/inventory/items", params={"low_stock": "true"}, name="inventory/low_stock")

    @task(3)
    def list_plans(self):
        self.client.get("/api/subscriptions/plans", params={"active_only": "true"}, name="subscriptions/plans")

    @task(1)
    def stats(self):
        self.client.get("/api/subscriptions/stats", name="subscriptions/stats")

    @task(1)
    def health(self):
        self.client.get("/api/health", name="system/health")


class SalesUser(GymUser):
    """Rings up small sales against a shared set of items, racing for stock."""
    weight = 2

    item_ids: List[int] = []

    def on_start(self):
        super().on_start()
        self.item_ids = list(ITEM_IDS)
        if not self.item_ids:
            response = self.client.get("/api/inventory/items", params={"page_size": 20}, name="inventory/items")
            if response.status_code == 200:
                self.item_ids = [item["id"] for item in response.json().get("items", [])]

    @task(4)
    def create_sale(self):
        if not self.item_ids:
            return
        lines = [
            {"item_id": item_id, "quantity": random.randint(1, 2)}
            for item_id in random.sample(self.item_ids, k=min(2, len(self.item_ids)))
        ]
        with self.client.post(
            "/api/inventory/sales",
            json={"items": lines, "payment_method": random.choice(["Cash", "Credit Card"])},
            name="sales/create",
            catch_response=True,
        ) as response:
            if response.status_code == 201:
                response.success()
            elif response.status_code == 409 and response.json().get("kind") == "insufficient_stock":
                response.success()
            else:
                response.failure(f"unexpected {response.status_code}")

    @task(1)
    def restock(self):
        if not self.item_ids:
            return
        self.client.post(
            f"/api/inventory/items/{random.choice(self.item_ids)}/adjustments",
            json={"adjustment_type": "increase", "quantity": 5, "reason": "Stock Count Correction"},
            name="inventory/adjust",
        )

    @task(2)
    def list_sales(self):
        self.client.get("/api/inventory/sales", name="sales/list")


class MembershipUser(GymUser):
    """Subscribes and cancels members, racing on the one-active rule."""
    weight = 1

    plan_id: Optional[int] = None

    def on_start(self):
        super().on_start()
        response = self.client.get("/api/subscriptions/plans", params={"active_only": "true"}, name="subscriptions/plans")
        if response.status_code == 200:
            plans = response.json().get("items", [])
            if plans:
                self.plan_id = plans[0]["id"]

    @task(3)
    def subscribe(self):
        if not (self.plan_id and MEMBER_IDS):
            return
        with self.client.post(
            "/api/subscriptions/user-subscriptions",
            json={"user_id": random.choice(MEMBER_IDS), "plan_id": self.plan_id},
            name="subscriptions/subscribe",
            catch_response=True,
        ) as response:
            if response.status_code in (201, 409):
                response.success()
            else:
                response.failure(f"unexpected {response.status_code}")

    @task(2)
    def cancel_active(self):
        if not MEMBER_IDS:
            return
        user_id = random.choice(MEMBER_IDS)
        with self.client.get(
            f"/api/subscriptions/users/{user_id}/active",
            name="subscriptions/active",
            catch_response=True,
        ) as response:
            if response.status_code == 404:
                response.success()
                return
            if response.status_code != 200:
                response.failure(f"unexpected {response.status_code}")
                return
            sub_id = response.json()["subscription"]["id"]

        with self.client.patch(
            f"/api/subscriptions/user-subscriptions/{sub_id}/cancel",
            json={"reason": "Load test"},
            name="subscriptions/cancel",
            catch_response=True,
        ) as response:
            # 400: another user cancelled it first
            if response.status_code in (200, 400):
                response.success()
            else:
                response.failure(f"unexpected {response.status_code}")


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print a pass/fail line per endpoint when the run ends."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)
    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'P95(ms)':>10}")
    print("-" * 80)

    all_pass = True
    for name in sorted(stats.times):
        count = len(stats.times[name])
        errors = stats.errors[name]
        error_rate = errors / count * 100
        p95 = stats.p95(name)
        threshold = 1000 if name in WRITE_ENDPOINTS else 500
        passed = p95 < threshold and error_rate < 1
        all_pass = all_pass and passed
        print(f"{name:<30} {count:>8} {errors:>8} {error_rate:>7.2f}% {p95:>9.1f} [{'PASS' if passed else 'FAIL'}]")

    print("=" * 80)
    print("\n[PASS] All endpoints within thresholds" if all_pass else "\n[FAIL] Some endpoints exceeded thresholds")
