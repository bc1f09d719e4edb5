"""
POS Load Testing with Locust

Seed the target first (python -m flask system seed), then run:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001 \
           --users 10 --spawn-rate 2 --run-time 60s --headless

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1%

Sales may legitimately answer 409 once the seeded stock runs out; that
counts as handled, not as an error.
"""

import os
import time
import random
from typing import Optional, Dict, List

from locust import HttpUser, task, between, events


# =============================================================================
# CONFIGURATION
# =============================================================================

# Seeded owner (see "flask system seed")
TEST_USERS = [
    {
        "username": os.environ.get("LOAD_TEST_USERNAME", "admin"),
        "password": os.environ.get("LOAD_TEST_PASSWORD", "Password123!"),
    },
]


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

            p50_idx = int(count * 0.50)
            p95_idx = int(count * 0.95)
            p99_idx = int(count * 0.99)

            summary[name] = {
                "count": self.request_counts[name],
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / self.request_counts[name] * 100,
                "avg_ms": sum(times) / count,
                "p50_ms": times[p50_idx] if p50_idx < count else times[-1],
                "p95_ms": times[p95_idx] if p95_idx < count else times[-1],
                "p99_ms": times[p99_idx] if p99_idx < count else times[-1],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class POSUser(HttpUser):
    """
    Base POS user that authenticates on start and caches the catalog ids.
    """
    wait_time = between(0.5, 2)
    abstract = True

    token: Optional[str] = None
    product_ids: List[int] = []

    def on_start(self):
        """Login when user starts."""
        self.login()
        self.load_product_ids()

    def login(self):
        """Authenticate and get token."""
        creds = random.choice(TEST_USERS)
        response = self.client.post(
            "/api/v1/auth/login",
            json={"username": creds["username"], "password": creds["password"]},
            name="auth/login"
        )

        if response.status_code == 200:
            self.token = response.json().get("token")

    def load_product_ids(self):
        response = self.client.get("/api/v1/products", headers=self.get_headers(), name="products/list")
        if response.status_code == 200:
            self.product_ids = [p["id"] for p in response.json().get("items", [])]

    def get_headers(self) -> Dict:
        """Get headers with auth token."""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


class BrowsingUser(POSUser):
    """
    User that primarily browses/reads data.
    Simulates a cashier looking up products and recent sales.
    """
    weight = 3  # 3x more browsing than writes

    @task(5)
    def list_products(self):
        """List products (frequent operation)."""
        start = time.time()
        response = self.client.get(
            "/api/v1/products",
            params={"page": 1, "per_page": 50},
            headers=self.get_headers(),
            name="products/list"
        )
        metrics.record("products/list", (time.time() - start) * 1000, response.status_code == 200)

    @task(3)
    def search_products(self):
        start = time.time()
        response = self.client.get(
            "/api/v1/products/search",
            params={"q": random.choice(["coffee", "milk", "SKU-10", "1kg"])},
            headers=self.get_headers(),
            name="products/search"
        )
        metrics.record("products/search", (time.time() - start) * 1000, response.status_code == 200)

    @task(2)
    def list_transactions(self):
        start = time.time()
        response = self.client.get(
            "/api/v1/transactions",
            params={"page": 1, "per_page": 20},
            headers=self.get_headers(),
            name="transactions/list"
        )
        metrics.record("transactions/list", (time.time() - start) * 1000, response.status_code == 200)

    @task(1)
    def today_summary(self):
        start = time.time()
        response = self.client.get(
            "/api/v1/analytics/today-summary",
            headers=self.get_headers(),
            name="analytics/today"
        )
        metrics.record("analytics/today", (time.time() - start) * 1000, response.status_code == 200)

    @task(1)
    def validate_session(self):
        """Validate current session."""
        start = time.time()
        response = self.client.get(
            "/api/v1/auth/me",
            headers=self.get_headers(),
            name="auth/me"
        )
        metrics.record("auth/me", (time.time() - start) * 1000, response.status_code == 200)

    @task(1)
    def health_check(self):
        """System health check."""
        start = time.time()
        response = self.client.get("/api/v1/health", name="system/health")
        metrics.record("system/health", (time.time() - start) * 1000, response.status_code == 200)


class SalesUser(POSUser):
    """
    User that records sales.
    Many of these hit the same few products, exercising the stock decrements.
    """
    weight = 2

    @task(4)
    def record_sale(self):
        """Ring up a 1-3 line cart at catalog prices."""
        if not self.product_ids:
            return

        items = [
            {"product_id": pid, "quantity": random.randint(1, 3)}
            for pid in random.sample(self.product_ids, k=min(len(self.product_ids), random.randint(1, 3)))
        ]

        start = time.time()
        response = self.client.post(
            "/api/v1/transactions",
            json={"transaction": {"amount_received": 500}, "items": items},
            headers=self.get_headers(),
            name="transactions/create"
        )
        metrics.record("transactions/create", (time.time() - start) * 1000, response.status_code in (201, 409))

    @task(1)
    def restock(self):
        """Put stock back so sales keep succeeding."""
        if not self.product_ids:
            return

        start = time.time()
        response = self.client.put(
            f"/api/v1/products/{random.choice(self.product_ids)}",
            json={"stock_delta": random.randint(5, 20)},
            headers=self.get_headers(),
            name="products/restock"
        )
        metrics.record("products/restock", (time.time() - start) * 1000, response.status_code in (200, 403))


class AdminUser(POSUser):
    """
    Owner/manager performing management reads.
    """
    weight = 1

    @task(3)
    def list_users(self):
        """List users."""
        start = time.time()
        response = self.client.get(
            "/api/v1/users",
            headers=self.get_headers(),
            name="users/list"
        )
        metrics.record("users/list", (time.time() - start) * 1000, response.status_code in (200, 403))

    @task(1)
    def top_selling(self):
        start = time.time()
        response = self.client.get(
            "/api/v1/analytics/top-selling",
            headers=self.get_headers(),
            name="analytics/top"
        )
        metrics.record("analytics/top", (time.time() - start) * 1000, response.status_code == 200)


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

        p95_threshold = 1000 if "create" in name or "restock" in name else 500
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
        print("  - Reads (list/search/summary): P95 < 500ms, Error rate < 1%")
        print("  - Writes (sales/restock): P95 < 1000ms, Error rate < 1%")

    print("=" * 80)
