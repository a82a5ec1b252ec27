import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def configure_logging(level: str = None):
    """Configura el logging de la aplicación (una sola vez por proceso)."""
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )


def _normalize_url(value: str) -> str:
    value = value.strip().rstrip("/")
    if not value.startswith(("http://", "https://")):
        value = f"http://{value}"
    return value


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


# Configuración del proxy hacia el dispositivo
class DeviceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_address: str = "http://192.168.1.100:8080"
    public_address: str = "localhost:8080"  # solo para mostrar
    request_timeout_ms: int = Field(5000, gt=0)
    default_pump_duration_ms: int = Field(3000, gt=0)
    max_pump_duration_ms: int = Field(60000, gt=0)
    simulation_fallback: bool = True

    @field_validator("base_address")
    @classmethod
    def _check_base_address(cls, value: str) -> str:
        return _normalize_url(value)

    @property
    def request_timeout(self) -> float:
        return self.request_timeout_ms / 1000


# Configuración del dashboard (cliente del proxy)
class DashboardConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    proxy_url: str = "http://localhost:8000"
    public_address: str = "localhost:8080"
    poll_interval_ms: int = Field(2000, gt=0)
    repoll_delay_ms: int = Field(3000, ge=0)
    request_timeout_ms: int = Field(5000, gt=0)

    @field_validator("proxy_url")
    @classmethod
    def _check_proxy_url(cls, value: str) -> str:
        return _normalize_url(value)


def load_device_config() -> DeviceConfig:
    """Lee la configuración del dispositivo desde el entorno (y .env si existe)."""
    load_dotenv()
    return DeviceConfig(
        base_address=os.getenv("DEVICE_ADDRESS", "http://192.168.1.100:8080"),
        public_address=os.getenv("PUBLIC_DEVICE_ADDRESS", "localhost:8080"),
        request_timeout_ms=int(os.getenv("DEVICE_TIMEOUT_MS", "5000")),
        default_pump_duration_ms=int(os.getenv("PUMP_DURATION_MS", "3000")),
        max_pump_duration_ms=int(os.getenv("MAX_PUMP_DURATION_MS", "60000")),
        simulation_fallback=_env_flag("SIMULATION_FALLBACK", True),
    )


def load_dashboard_config() -> DashboardConfig:
    """Lee la configuración del dashboard desde el entorno."""
    load_dotenv()
    return DashboardConfig(
        proxy_url=os.getenv("PROXY_URL", "http://localhost:8000"),
        public_address=os.getenv("PUBLIC_DEVICE_ADDRESS", "localhost:8080"),
        poll_interval_ms=int(os.getenv("POLL_INTERVAL_MS", "2000")),
        repoll_delay_ms=int(os.getenv("REPOLL_DELAY_MS", "3000")),
        request_timeout_ms=int(os.getenv("DASHBOARD_TIMEOUT_MS", "5000")),
    )
