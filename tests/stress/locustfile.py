"""
Self-Checkout Load Testing with Locust

Seed a station and stock first (server started with SIMULATED_PAYMENTS_ENABLED=true):
    python -m flask stations create --id LOAD-KIOSK
    python -m flask inventory add-record --id LOAD-P-1 --stock 1000000
    python -m flask inventory add-record --id legacy-LOAD-P-1 --stock 1000000 --primary LOAD-P-1

Run with:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001 \
           --users 10 --spawn-rate 2 --run-time 60s --headless

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1%
"""

import os
import time
import uuid
import random
from typing import Dict, List

from locust import HttpUser, task, between, events


# =============================================================================
# CONFIGURATION
# =============================================================================

STATION_ID = os.environ.get("LOAD_STATION_ID", "LOAD-KIOSK")
PRODUCT_IDS = [p for p in os.environ.get("LOAD_PRODUCT_IDS", "LOAD-P-1").split(",") if p]
UNIT_PRICE_CENTS = 450


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Collect and report metrics."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}

    def record(self, name: str, response_time: float, success: bool):
        if name not in self.request_counts:
            self.request_counts[name] = 0
            self.error_counts[name] = 0
            self.response_times[name] = []

        self.request_counts[name] += 1
        if not success:
            self.error_counts[name] += 1
        self.response_times[name].append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name in self.request_counts:
            times = sorted(self.response_times[name])
            count = len(times)
            if count == 0:
                continue

            p95_idx = int(count * 0.95)

            summary[name] = {
                "count": self.request_counts[name],
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / self.request_counts[name] * 100,
                "avg_ms": sum(times) / count,
                "p95_ms": times[p95_idx] if p95_idx < count else times[-1],
            }
        return summary


metrics = MetricsCollector()


def _cart() -> List[Dict]:
    product_id = random.choice(PRODUCT_IDS)
    quantity = random.randint(1, 3)
    return [{"id": product_id, "name": "Load item", "price": UNIT_PRICE_CENTS / 100, "quantity": quantity}]


def _total_cents(cart: List[Dict]) -> int:
    return sum(UNIT_PRICE_CENTS * item["quantity"] for item in cart)


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class KioskUser(HttpUser):
    """
    Kiosk completing simulated / offline purchases.
    """
    wait_time = between(0.5, 2)
    weight = 3

    receipt_tokens: List[str] = []

    @task(4)
    def record_purchase(self):
        cart = _cart()
        start = time.time()
        response = self.client.post(
            "/api/checkout/record",
            json={"station_id": STATION_ID, "items": cart, "amount_cents": _total_cents(cart)},
            name="checkout/record",
        )
        ok = response.status_code == 201
        metrics.record("checkout/record", (time.time() - start) * 1000, ok)

        if ok:
            self.receipt_tokens.append(response.json()["receipt_token"])

    @task(2)
    def open_receipt(self):
        if not self.receipt_tokens:
            return

        token = random.choice(self.receipt_tokens[-20:])
        start = time.time()
        response = self.client.get(f"/api/receipts/{token}", name="receipts/get")
        metrics.record("receipts/get", (time.time() - start) * 1000, response.status_code == 200)


class FinalizeUser(HttpUser):
    """
    Online payment flow: register a bill, then finalize it from two racing
    entry points (return page and callback retry).
    """
    wait_time = between(0.5, 2)
    weight = 2

    @task
    def register_and_finalize(self):
        cart = _cart()
        amount_cents = _total_cents(cart)
        payment_ref = f"load-{uuid.uuid4().hex[:12]}"

        start = time.time()
        response = self.client.post(
            "/api/payments/",
            json={
                "provider": "SIMULATED",
                "payment_ref": payment_ref,
                "station_id": STATION_ID,
                "amount_cents": amount_cents,
            },
            name="payments/register",
        )
        metrics.record("payments/register", (time.time() - start) * 1000, response.status_code == 201)
        if response.status_code != 201:
            return

        payload = {
            "provider": "SIMULATED",
            "payment_ref": payment_ref,
            "station_id": STATION_ID,
            "items": cart,
            "amount_cents": amount_cents,
        }
        purchase_ids = set()
        for _ in range(2):
            start = time.time()
            response = self.client.post("/api/checkout/finalize", json=payload, name="checkout/finalize")
            ok = response.status_code == 200
            metrics.record("checkout/finalize", (time.time() - start) * 1000, ok)
            if ok:
                purchase_ids.add(response.json()["purchase_id"])

        # Both calls must converge on one purchase
        metrics.record("checkout/finalize_converged", 0, len(purchase_ids) <= 1)


class BrowsingUser(HttpUser):
    """
    Read-only traffic: diagnostics and health.
    """
    wait_time = between(0.5, 2)
    weight = 1

    @task(3)
    def resolve_inventory(self):
        start = time.time()
        response = self.client.get(
            f"/api/inventory/{random.choice(PRODUCT_IDS)}/resolve",
            name="inventory/resolve",
        )
        metrics.record("inventory/resolve", (time.time() - start) * 1000, response.status_code == 200)

    @task(1)
    def health_check(self):
        start = time.time()
        response = self.client.get("/api/health", name="system/health")
        metrics.record("system/health", (time.time() - start) * 1000, response.status_code == 200)


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)

    summary = metrics.get_summary()

    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    total_requests = 0
    total_errors = 0
    all_pass = True

    for name, stats in sorted(summary.items()):
        total_requests += stats["count"]
        total_errors += stats["errors"]

        # Writes get the looser latency budget
        p95_threshold = 1000 if name.startswith(("checkout/", "payments/")) else 500
        passed = stats["p95_ms"] < p95_threshold and stats["error_rate"] < 1

        status = "PASS" if passed else "FAIL"
        if not passed:
            all_pass = False

        print(f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% {stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{status}]")

    print("-" * 80)
    print(f"{'TOTAL':<30} {total_requests:>8} {total_errors:>8} {total_errors/max(total_requests,1)*100:>7.2f}%")
    print("=" * 80)

    if all_pass:
        print("\n[PASS] All endpoints within thresholds")
    else:
        print("\n[FAIL] Some endpoints exceeded thresholds")
        print("  - Reads (get/resolve/health): P95 < 500ms, Error rate < 1%")
        print("  - Writes (checkout/payments): P95 < 1000ms, Error rate < 1%")

    print("=" * 80)
