"""Datos simulados para cuando el ESP32 no está disponible (modo demo)."""
import random
from datetime import datetime, timezone

from models import StatusReading, WaterResult

SIMULATED_TEMPERATURE = 22.5


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def clamp_moisture(value: float) -> int:
    return int(max(0, min(100, round(value))))


def simulated_status() -> StatusReading:
    """Genera una lectura aleatoria de humedad entre 0 y 99 con la bomba apagada."""
    return StatusReading(
        moisture=clamp_moisture(random.randrange(0, 100)),
        is_pumping=False,
        temperature=SIMULATED_TEMPERATURE,
        timestamp=now_iso(),
        simulated=True,
    )


def simulated_activation(duration_ms: int) -> WaterResult:
    return WaterResult(
        success=True,
        message="simulated activation",
        pump_duration=duration_ms,
        simulated=True,
    )
