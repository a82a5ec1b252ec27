import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp
from pydantic import ValidationError

from config import DeviceConfig
from models import DeviceAck, DeviceStatus

logger = logging.getLogger("gravity_meter.gateway")


class DeviceError(Exception):
    """Error base al hablar con el dispositivo."""


class DeviceUnreachable(DeviceError):
    """Red caída, timeout o respuesta ilegible: no se distingue la causa."""


class DeviceUpstreamError(DeviceError):
    """El dispositivo respondió, pero con un código de error HTTP."""

    def __init__(self, status: int, reason: str):
        super().__init__(f"Device error: {reason}")
        self.status = status
        self.reason = reason


class DeviceGatewayClient:
    """Cliente HTTP del controlador de riego (ESP32)."""

    def __init__(
        self, config: DeviceConfig, session: Optional[aiohttp.ClientSession] = None
    ):
        self.config = config
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> str:
        """Devuelve el cuerpo de una respuesta 2xx como texto."""
        url = f"{self.config.base_address}{path}"
        session = await self._get_session()
        try:
            async with session.request(
                method, url, json=payload, timeout=self._timeout
            ) as response:
                if not 200 <= response.status < 300:
                    logger.error(
                        f"Dispositivo respondió {response.status} en {method} {path}"
                    )
                    raise DeviceUpstreamError(
                        response.status, response.reason or str(response.status)
                    )
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Dispositivo inaccesible en {url}: {e!r}")
            raise DeviceUnreachable(str(e) or type(e).__name__) from e

    async def fetch_status(self) -> DeviceStatus:
        """Lee humedad, estado de la bomba y temperatura del dispositivo."""
        body = await self._request("GET", "/status")
        try:
            return DeviceStatus.model_validate(json.loads(body))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Respuesta de estado ilegible: {body[:100]!r}")
            raise DeviceUnreachable(f"respuesta de estado inválida: {e}") from e

    async def trigger_water(self, duration_ms: int) -> DeviceAck:
        """Activa la bomba durante duration_ms. No se reintenta nunca.

        Un 2xx ya significa que la bomba arrancó: si el cuerpo no es un JSON
        válido (muchos firmwares responden "OK") se devuelve un ack sin mensaje.
        """
        logger.info(f"Activando bomba durante {duration_ms} ms")
        body = await self._request("POST", "/water", {"duration": duration_ms})
        try:
            return DeviceAck.model_validate(json.loads(body))
        except (ValueError, ValidationError):
            logger.info(f"Ack de riego sin JSON: {body[:100]!r}")
            return DeviceAck()
