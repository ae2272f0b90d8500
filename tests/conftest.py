import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def pytest_configure(config):
    # Register the asyncio marker so pytest doesn't warn when it's used.
    config.addinivalue_line(
        "markers", "asyncio: mark test to run in an asyncio event loop"
    )
    config.addinivalue_line("markers", "unit: mark test as a unit test")


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Set required environment variables for tests.

    Settings read the environment (and .env); pin every knob the tests
    depend on so a developer's local configuration cannot leak in.
    """
    monkeypatch.setenv("CAKEMAIL_USERNAME", "user@example.com")
    monkeypatch.setenv("CAKEMAIL_PASSWORD", "test-password")
    monkeypatch.setenv("CAKEMAIL_BASE_URL", "https://api.cakemail.test")
    monkeypatch.setenv("MCP_SERVER_NAME", "cakemail-test")
    monkeypatch.setenv("LOG_LEVEL", "INFO")

    yield


@pytest.fixture
def token_payload():
    """Sample token endpoint response."""
    return {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "token_type": "bearer",
        "expires_in": 3600,
        "accounts": [42],
    }


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorded_sleep(clock):
    """Sleep replacement that advances the fake clock and records delays."""
    delays = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)
        clock.advance(seconds)

    sleep.delays = delays
    return sleep
