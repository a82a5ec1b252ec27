"""Dashboard de humedad del suelo.

Consulta el proxy cada ``poll_interval`` segundos y permite activar la bomba.
Todo cambio de estado pasa por una cola de eventos que consume una única
tarea (``_dispatch_loop``); las llamadas de red se lanzan como comandos y
devuelven su resultado a la cola como nuevos eventos.

Ejecutar en una terminal con ``python dashboard.py`` (w = regar, q = salir).
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import itertools
import logging
import sys
from typing import Callable, List, Optional, Union

import aiohttp
from pydantic import ValidationError

from config import DashboardConfig, configure_logging, load_dashboard_config
from gauge import GaugeView, build_gauge, render_text
from models import StatusReading, WaterResult

logger = logging.getLogger("gravity_meter.dashboard")

STATUS_ERROR = "Failed to fetch soil status"
WATER_ERROR = "Failed to activate pump"


class ClientFetchError(Exception):
    """Falló la llamada del dashboard al proxy."""


class ProxyClient:
    """Cliente del proxy (/api/soil-status y /api/water) con timeout explícito."""

    def __init__(
        self, config: DashboardConfig, session: Optional[aiohttp.ClientSession] = None
    ):
        self.base_url = config.proxy_url
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout_ms / 1000)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def _call(self, method: str, path: str, payload=None):
        session = await self._get_session()
        try:
            async with session.request(
                method, f"{self.base_url}{path}", json=payload, timeout=self._timeout
            ) as response:
                response.raise_for_status()
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ClientFetchError(f"{method} {path}: {e!r}") from e

    async def fetch_status(self) -> StatusReading:
        data = await self._call("GET", "/api/soil-status")
        try:
            return StatusReading.model_validate(data)
        except ValidationError as e:
            raise ClientFetchError(f"respuesta de estado inválida: {e}") from e

    async def trigger_water(self, duration_ms: Optional[int] = None) -> WaterResult:
        payload = None if duration_ms is None else {"duration": duration_ms}
        data = await self._call("POST", "/api/water", payload)
        try:
            return WaterResult.model_validate(data)
        except ValidationError as e:
            raise ClientFetchError(f"respuesta de riego inválida: {e}") from e


class PumpState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    PUMPING = "pumping"


@dataclass
class DashboardState:
    moisture: int = 50
    is_pumping: bool = False
    temperature: Optional[float] = None
    timestamp: Optional[str] = None
    simulated: bool = False
    loading: bool = False
    error: Optional[str] = None
    last_update: datetime = field(default_factory=datetime.now)

    @property
    def pump_state(self) -> PumpState:
        if self.loading:
            return PumpState.REQUESTING
        if self.is_pumping:
            return PumpState.PUMPING
        return PumpState.IDLE

    @property
    def button_enabled(self) -> bool:
        return not (self.loading or self.is_pumping)

    def gauge(self) -> GaugeView:
        return build_gauge(
            self.moisture,
            self.is_pumping,
            loading=self.loading,
            last_update=self.last_update,
            error=self.error,
            simulated=self.simulated,
        )


# Eventos
@dataclass(frozen=True)
class PollTick:
    pass


@dataclass(frozen=True)
class StatusReceived:
    seq: int
    reading: StatusReading


@dataclass(frozen=True)
class StatusFailed:
    seq: int
    reason: str


@dataclass(frozen=True)
class WaterClicked:
    pass


@dataclass(frozen=True)
class WaterSucceeded:
    result: WaterResult


@dataclass(frozen=True)
class WaterFailed:
    reason: str


Event = Union[
    PollTick, StatusReceived, StatusFailed, WaterClicked, WaterSucceeded, WaterFailed
]


# Comandos
@dataclass(frozen=True)
class FetchStatus:
    seq: int


@dataclass(frozen=True)
class TriggerWater:
    pass


@dataclass(frozen=True)
class ScheduleRepoll:
    delay: float


Command = Union[FetchStatus, TriggerWater, ScheduleRepoll]


class DashboardView:
    def __init__(
        self,
        client,
        poll_interval: float = 2.0,
        repoll_delay: float = 3.0,
        on_change: Optional[Callable[[DashboardState], None]] = None,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.repoll_delay = repoll_delay
        self.on_change = on_change
        self.state = DashboardState()

        self._queue: Optional[asyncio.Queue] = None
        self._tasks = set()
        self._mounted = False
        self._seq = 0
        self._applied_seq = 0
        # Lecturas pedidas antes de la última activación no se aplican
        self._min_seq = 0

    @property
    def mounted(self) -> bool:
        return self._mounted

    def _is_stale(self, seq: int) -> bool:
        return seq < self._min_seq or seq <= self._applied_seq

    def apply(self, event: Event) -> List[Command]:
        """Aplica un evento al estado y devuelve los comandos a ejecutar.

        Es el único punto que escribe ``self.state``.
        """
        state = self.state

        if isinstance(event, PollTick):
            self._seq += 1
            return [FetchStatus(self._seq)]

        if isinstance(event, StatusReceived):
            if self._is_stale(event.seq):
                logger.debug(f"Lectura {event.seq} descartada por antigua")
                return []
            self._applied_seq = event.seq
            reading = event.reading
            state.moisture = reading.moisture
            state.is_pumping = reading.is_pumping
            state.temperature = reading.temperature
            state.timestamp = reading.timestamp
            state.simulated = reading.simulated
            state.error = None
            state.last_update = datetime.now()
            return []

        if isinstance(event, StatusFailed):
            if self._is_stale(event.seq):
                return []
            self._applied_seq = event.seq
            # Se conservan las últimas lecturas en pantalla
            state.error = STATUS_ERROR
            return []

        if isinstance(event, WaterClicked):
            if not state.button_enabled:
                return []
            state.loading = True
            return [TriggerWater()]

        if isinstance(event, WaterSucceeded):
            state.loading = False
            state.is_pumping = True
            state.error = None
            self._min_seq = self._seq + 1
            return [ScheduleRepoll(self.repoll_delay)]

        if isinstance(event, WaterFailed):
            state.loading = False
            state.error = WATER_ERROR
            return []

        raise TypeError(f"Evento desconocido: {event!r}")

    def click_water(self) -> bool:
        """Pulsa el botón de riego. Devuelve False si está deshabilitado."""
        if not self._mounted or not self.state.button_enabled:
            return False
        self._post(WaterClicked())
        return True

    async def mount(self):
        if self._mounted:
            return
        self._queue = asyncio.Queue()
        self._mounted = True
        self._spawn(self._dispatch_loop())
        self._spawn(self._poll_loop())

    async def unmount(self):
        """Detiene el sondeo y cancela las peticiones en curso."""
        self._mounted = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._queue = None

    def _post(self, event: Event):
        if self._mounted and self._queue is not None:
            self._queue.put_nowait(event)

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Tarea del dashboard terminó con error: {task.exception()!r}"
            )

    async def _dispatch_loop(self):
        while True:
            event = await self._queue.get()
            try:
                for command in self.apply(event):
                    self._execute(command)
            except Exception as e:
                logger.error(f"Error aplicando el evento {event!r}: {e!r}")
            if self.on_change is not None:
                try:
                    self.on_change(self.state)
                except Exception as e:
                    # La pantalla puede fallar (p. ej. terminal sin UTF-8)
                    logger.error(f"Error redibujando el dashboard: {e!r}")

    def _execute(self, command: Command):
        if isinstance(command, FetchStatus):
            self._spawn(self._fetch_status(command.seq))
        elif isinstance(command, TriggerWater):
            self._spawn(self._trigger_water())
        elif isinstance(command, ScheduleRepoll):
            self._spawn(self._repoll(command.delay))

    async def _poll_loop(self):
        while True:
            self._post(PollTick())
            await asyncio.sleep(self.poll_interval)

    async def _repoll(self, delay: float):
        await asyncio.sleep(delay)
        self._post(PollTick())

    async def _fetch_status(self, seq: int):
        try:
            reading = await self.client.fetch_status()
        except ClientFetchError as e:
            logger.error(f"Error obteniendo el estado del suelo: {e}")
            self._post(StatusFailed(seq, str(e)))
        else:
            self._post(StatusReceived(seq, reading))

    async def _trigger_water(self):
        try:
            result = await self.client.trigger_water()
        except ClientFetchError as e:
            logger.error(f"Error activando la bomba: {e}")
            self._post(WaterFailed(str(e)))
        else:
            self._post(WaterSucceeded(result))


async def run_terminal(config: DashboardConfig):
    client = ProxyClient(config)
    frames = itertools.count()

    def redraw(state: DashboardState):
        screen = render_text(state.gauge(), config.public_address, next(frames))
        print("\033[2J\033[H" + screen, flush=True)

    view = DashboardView(
        client,
        poll_interval=config.poll_interval_ms / 1000,
        repoll_delay=config.repoll_delay_ms / 1000,
        on_change=redraw,
    )
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def on_input():
        line = sys.stdin.readline()
        command = line.strip().lower()
        if not line or command == "q":
            stop.set()
        elif command == "w" and not view.click_water():
            logger.info("Riego no disponible: bomba activa o petición en curso")

    loop.add_reader(sys.stdin, on_input)
    await view.mount()
    try:
        await stop.wait()
    finally:
        loop.remove_reader(sys.stdin)
        await view.unmount()
        await client.close()


def main():
    configure_logging()
    config = load_dashboard_config()
    try:
        asyncio.run(run_terminal(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
