# Self-Checkout Live API Test Suite - Shared Configuration and Fixtures
#
# This module provides:
# - Test database provisioning (ephemeral SQLite per test run)
# - A live Flask server with the simulated gateway enabled
# - Station and inventory seed data
# - Failure message formatting

import os
import sys
import time
import tempfile
import subprocess
import shutil
from pathlib import Path
from typing import Generator, Optional, Dict, Any
from dataclasses import dataclass

import pytest
import httpx

# Add backend to path for imports
REPO_ROOT = Path(__file__).parent.parent
BACKEND_DIR = REPO_ROOT / "backend"
sys.path.insert(0, str(BACKEND_DIR))


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class TestConfig:
    """Test configuration with environment variable overrides."""
    backend_base_url: str = os.environ.get("TEST_BACKEND_URL", "http://127.0.0.1:5001")

    request_timeout: float = float(os.environ.get("TEST_REQUEST_TIMEOUT", "30"))
    server_startup_timeout: float = float(os.environ.get("TEST_SERVER_STARTUP_TIMEOUT", "30"))


# Seeded by ServerManager.initialize_db
STATION_ID = "API-KIOSK"
SEED_STOCK = {"API-P-1": 50, "legacy-API-P-1": 50}


# =============================================================================
# FAILURE MESSAGE HELPER
# =============================================================================

class TestFailure(Exception):
    """
    Custom exception with detailed, human-readable failure messages.

    Structure:
    1. Scenario: What was being tested
    2. Expected: What should have happened
    3. Actual: What actually happened
    4. Code Location: Where to look in the codebase
    """

    def __init__(
        self,
        scenario: str,
        expected: str,
        actual: str,
        code_location: str,
        response: Optional[httpx.Response] = None,
        extra_context: Optional[Dict[str, Any]] = None
    ):
        self.scenario = scenario
        self.expected = expected
        self.actual = actual
        self.code_location = code_location
        self.response = response
        self.extra_context = extra_context or {}

        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [
            "",
            "=" * 80,
            "TEST FAILURE DETAILS",
            "=" * 80,
            f"SCENARIO: {self.scenario}",
            "-" * 80,
            f"EXPECTED: {self.expected}",
            f"ACTUAL: {self.actual}",
            "-" * 80,
            f"LIKELY CAUSE: {_infer_cause(self.response) if self.response is not None else 'n/a'}",
            f"CODE LOCATION: {self.code_location}",
        ]

        if self.response is not None:
            lines.extend([
                "-" * 80,
                f"HTTP STATUS: {self.response.status_code}",
                f"RESPONSE BODY: {self.response.text[:1000]}",
            ])

        if self.extra_context:
            lines.append("-" * 80)
            lines.append("EXTRA CONTEXT:")
            for key, value in self.extra_context.items():
                lines.append(f"  {key}: {value}")

        lines.append("=" * 80)
        return "\n".join(lines)


def assert_response(response: httpx.Response, expected_status: int, scenario: str, code_location: str):
    """Raise TestFailure with a detailed message when the status differs."""
    if response.status_code != expected_status:
        raise TestFailure(
            scenario=scenario,
            expected=f"HTTP {expected_status}",
            actual=f"HTTP {response.status_code}",
            code_location=code_location,
            response=response
        )


def _infer_cause(response: httpx.Response) -> str:
    """Infer likely cause from response status/body."""
    if response.status_code == 403:
        return "Unknown or deactivated station - check the seeded station id"
    elif response.status_code == 404:
        return "Resource not found - wrong token or reference"
    elif response.status_code == 400:
        return "Invalid request - missing required field or validation failed"
    elif response.status_code == 409:
        return "Rejected - inventory record missing, stock too low, or payment not verified"
    elif response.status_code == 503:
        return "Storage contention outlasted the retry loop"
    elif response.status_code == 500:
        return "Server error - check backend logs for stack trace"
    else:
        return f"Unexpected status code {response.status_code}"


# =============================================================================
# HTTP CLIENT
# =============================================================================

class APIClient:
    """HTTP client wrapper with JSON helpers."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout)

    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.get(f"{self.base_url}{path}", params=params, **kwargs)

    def post(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.post(f"{self.base_url}{path}", json=json, **kwargs)

    def close(self):
        """Close the HTTP client."""
        self.client.close()


# =============================================================================
# SERVER MANAGEMENT
# =============================================================================

class ServerManager:
    """
    Manages Flask backend server lifecycle for tests.
    """

    def __init__(self, config: TestConfig):
        self.config = config
        self.process: Optional[subprocess.Popen] = None
        self.db_file: Optional[Path] = None

    def start(self) -> bool:
        """Start the Flask server with test database."""
        temp_dir = tempfile.mkdtemp(prefix="selfcheckout_test_")
        self.db_file = Path(temp_dir) / "test_selfcheckout.sqlite3"

        # Schema and seed data must exist before the server takes traffic
        self.initialize_db()

        env = os.environ.copy()
        env["DATABASE_URL"] = f"sqlite:///{self.db_file}"
        env["SIMULATED_PAYMENTS_ENABLED"] = "true"
        env["FLASK_APP"] = "wsgi.py"

        port = self.config.backend_base_url.rsplit(":", 1)[-1].split("/")[0]
        self.process = subprocess.Popen(
            [sys.executable, "-m", "flask", "run", "--port", port],
            cwd=str(BACKEND_DIR),
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

        return self._wait_for_server()

    def _wait_for_server(self) -> bool:
        """Wait for server to be responsive."""
        start_time = time.time()
        while time.time() - start_time < self.config.server_startup_timeout:
            try:
                response = httpx.get(f"{self.config.backend_base_url}/api/health", timeout=2.0)
                if response.status_code in (200, 503):  # 503 means unhealthy but running
                    return True
            except (httpx.ConnectError, httpx.TimeoutException):
                pass
            time.sleep(0.5)
        return False

    def stop(self):
        """Stop the Flask server and cleanup."""
        if self.process:
            self.process.terminate()
            try:
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.process.kill()
            self.process = None

        if self.db_file and self.db_file.parent.exists():
            shutil.rmtree(self.db_file.parent, ignore_errors=True)

    def initialize_db(self):
        """Create schema, the test station and seeded stock."""
        from selfcheckout import create_app
        from selfcheckout.extensions import db
        from selfcheckout.models import Station
        from selfcheckout.services.inventory_service import create_inventory_record

        app = create_app({"SQLALCHEMY_DATABASE_URI": f"sqlite:///{self.db_file}"})

        with app.app_context():
            db.create_all()

            db.session.add(Station(id=STATION_ID, name="API Test Kiosk", is_active=True))
            db.session.commit()

            create_inventory_record(record_id="API-P-1", stock_level=SEED_STOCK["API-P-1"])
            create_inventory_record(
                record_id="legacy-API-P-1",
                stock_level=SEED_STOCK["legacy-API-P-1"],
                product_id_primary="API-P-1",
            )
            db.engine.dispose()


# =============================================================================
# PYTEST FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def test_config() -> TestConfig:
    """Provide test configuration."""
    return TestConfig()


@pytest.fixture(scope="session")
def server_manager(test_config: TestConfig) -> Generator[ServerManager, None, None]:
    """
    Manage test server lifecycle.
    Server is started once per test session.
    """
    manager = ServerManager(test_config)

    # For CI/external server mode, don't manage server
    if os.environ.get("TEST_EXTERNAL_SERVER"):
        yield manager
    else:
        if not manager.start():
            manager.stop()
            pytest.fail("Failed to start test server")
        yield manager
        manager.stop()


@pytest.fixture(scope="session")
def api_client(test_config: TestConfig, server_manager: ServerManager) -> Generator[APIClient, None, None]:
    client = APIClient(test_config.backend_base_url, timeout=test_config.request_timeout)
    yield client
    client.close()


# =============================================================================
# TEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "smoke: Quick smoke tests for critical paths")
    config.addinivalue_line("markers", "checkout: Checkout completion tests")
    config.addinivalue_line("markers", "payments: Payment record tests")
    config.addinivalue_line("markers", "receipts: Public receipt tests")
