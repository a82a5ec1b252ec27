import pytest
from fastapi.testclient import TestClient

from config import DeviceConfig
from main import app, get_config, get_gateway


class FakeGateway:
    """Sustituto del cliente del dispositivo para los tests del proxy."""

    def __init__(self, status=None, ack=None, error=None):
        self.status = status
        self.ack = ack
        self.error = error
        self.water_calls = []

    async def fetch_status(self):
        if self.error is not None:
            raise self.error
        return self.status

    async def trigger_water(self, duration_ms):
        self.water_calls.append(duration_ms)
        if self.error is not None:
            raise self.error
        return self.ack


@pytest.fixture
def device_config():
    return DeviceConfig(base_address="http://esp32.test:8080")


@pytest.fixture
def make_client(device_config):
    def _make(gateway, config=None):
        app.dependency_overrides[get_gateway] = lambda: gateway
        app.dependency_overrides[get_config] = lambda: config or device_config
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()
