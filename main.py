from contextlib import asynccontextmanager
import json
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from config import DeviceConfig, configure_logging, load_device_config
from gateway import DeviceGatewayClient, DeviceUnreachable, DeviceUpstreamError
from models import (
    ErrorPayload,
    StatusReading,
    WaterErrorPayload,
    WaterRequest,
    WaterResult,
)
from simulator import clamp_moisture, now_iso, simulated_activation, simulated_status

# Configuración de logging
configure_logging()
logger = logging.getLogger("gravity_meter.api")

# La configuración se lee una sola vez al arrancar
device_config = load_device_config()
gateway = DeviceGatewayClient(device_config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Proxy apuntando al dispositivo en {device_config.base_address}")
    if not device_config.simulation_fallback:
        logger.info("Modo simulación desactivado: los fallos de red se reportan")
    yield
    await gateway.close()


app = FastAPI(title="Gravity Meter - Proxy de Riego", lifespan=lifespan)

# Configurar CORS para permitir peticiones desde el frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_config() -> DeviceConfig:
    return device_config


def get_gateway() -> DeviceGatewayClient:
    return gateway


UNREACHABLE_MESSAGE = "Device unreachable"


def status_fallback(config: DeviceConfig):
    """Lectura simulada, o 503 si el modo simulación está desactivado."""
    if not config.simulation_fallback:
        return JSONResponse(
            status_code=503,
            content=ErrorPayload(error=UNREACHABLE_MESSAGE).model_dump(),
        )
    logger.warning("ESP32 no disponible, devolviendo datos simulados")
    return simulated_status()


def water_fallback(config: DeviceConfig, duration_ms: int):
    """Activación simulada, o 503 si el modo simulación está desactivado."""
    if not config.simulation_fallback:
        return JSONResponse(
            status_code=503,
            content=WaterErrorPayload(
                error=UNREACHABLE_MESSAGE, message="activation failed"
            ).model_dump(),
        )
    logger.warning(f"ESP32 no disponible, simulando activación de {duration_ms} ms")
    return simulated_activation(duration_ms)


async def requested_duration(request: Request, config: DeviceConfig) -> int:
    """Duración pedida en el cuerpo; si falta o es inválida se usa la configurada."""
    body = await request.body()
    if not body.strip():
        return config.default_pump_duration_ms
    try:
        data = WaterRequest.model_validate(json.loads(body))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Cuerpo de riego inválido, usando duración por defecto: {e}")
        return config.default_pump_duration_ms
    if data.duration is None:
        return config.default_pump_duration_ms
    if data.duration > config.max_pump_duration_ms:
        logger.warning(
            f"Duración {data.duration} ms supera el máximo, "
            f"se limita a {config.max_pump_duration_ms} ms"
        )
        return config.max_pump_duration_ms
    return data.duration


# Endpoints para el dashboard


@app.get(
    "/api/soil-status",
    response_model=StatusReading,
    response_model_exclude_none=True,
    responses={503: {"model": ErrorPayload}},
)
async def soil_status(
    config: DeviceConfig = Depends(get_config),
    device: DeviceGatewayClient = Depends(get_gateway),
):
    """Estado del suelo leído del ESP32 (o simulado si no responde)."""
    try:
        try:
            status = await device.fetch_status()
        except DeviceUnreachable:
            return status_fallback(config)
        except DeviceUpstreamError as e:
            return JSONResponse(
                status_code=e.status, content=ErrorPayload(error=str(e)).model_dump()
            )

        moisture = 50 if status.moisture is None else clamp_moisture(status.moisture)
        return StatusReading(
            moisture=moisture,
            is_pumping=bool(status.pumping),
            temperature=status.temperature,
            timestamp=now_iso(),
        )
    except Exception as e:
        logger.error(f"Error obteniendo el estado del suelo: {e!r}")
        return status_fallback(config)


@app.post(
    "/api/water",
    response_model=WaterResult,
    responses={503: {"model": WaterErrorPayload}},
)
async def water(
    request: Request,
    config: DeviceConfig = Depends(get_config),
    device: DeviceGatewayClient = Depends(get_gateway),
):
    """Activa la bomba del ESP32 durante la duración pedida."""
    try:
        duration = await requested_duration(request, config)
        try:
            ack = await device.trigger_water(duration)
        except DeviceUnreachable:
            return water_fallback(config, duration)
        except DeviceUpstreamError as e:
            return JSONResponse(
                status_code=e.status,
                content=WaterErrorPayload(
                    error=str(e), message="activation failed"
                ).model_dump(),
            )

        logger.info(f"Bomba activada durante {duration} ms")
        return WaterResult(
            success=True,
            message=ack.message or "Pump activated successfully",
            pump_duration=duration,
        )
    except Exception as e:
        # Aquí se informa la duración configurada, no la pedida
        logger.error(f"Error activando la bomba: {e!r}")
        return water_fallback(config, config.default_pump_duration_ms)


@app.get("/healthz", response_class=PlainTextResponse)
async def healthz():
    return "ok"


@app.get("/")
async def root():
    """Endpoint raíz para verificar que la API está funcionando."""
    return {
        "mensaje": "Proxy de Gravity Meter funcionando correctamente",
        "dispositivo": device_config.public_address,
        "simulacion": device_config.simulation_fallback,
        "endpoints": [
            {
                "ruta": "/api/soil-status",
                "método": "GET",
                "descripción": "Obtener humedad del suelo y estado de la bomba",
            },
            {
                "ruta": "/api/water",
                "método": "POST",
                "descripción": "Activar la bomba de riego",
            },
            {
                "ruta": "/healthz",
                "método": "GET",
                "descripción": "Comprobación de vida",
            },
        ],
        "version": "1.0.0",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
