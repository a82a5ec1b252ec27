import asyncio
import socket

from aiohttp import web
from aiohttp.test_utils import TestServer
import pytest

from config import DeviceConfig
from gateway import DeviceGatewayClient, DeviceUnreachable, DeviceUpstreamError


def run_against_device(routes, scenario, timeout_ms=1000):
    """Levanta un ESP32 de prueba y ejecuta el escenario con un cliente real."""

    async def _run():
        device = web.Application()
        device.add_routes(routes)
        async with TestServer(device) as server:
            config = DeviceConfig(
                base_address=f"http://{server.host}:{server.port}",
                request_timeout_ms=timeout_ms,
            )
            client = DeviceGatewayClient(config)
            try:
                return await scenario(client)
            finally:
                await client.close()

    return asyncio.run(_run())


def free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_fetch_status_parses_device_payload():
    async def status(request):
        return web.json_response({"moisture": 42, "pumping": True, "temperature": 21.5})

    async def scenario(client):
        return await client.fetch_status()

    result = run_against_device([web.get("/status", status)], scenario)

    assert result.moisture == 42
    assert result.pumping is True
    assert result.temperature == 21.5


def test_trigger_water_posts_duration():
    received = []

    async def water(request):
        received.append(await request.json())
        return web.json_response({"message": "Pump on"})

    async def scenario(client):
        return await client.trigger_water(4000)

    ack = run_against_device([web.post("/water", water)], scenario)

    assert received == [{"duration": 4000}]
    assert ack.message == "Pump on"


def test_error_status_raises_upstream_error():
    async def status(request):
        return web.json_response({"error": "sensor"}, status=500)

    async def scenario(client):
        with pytest.raises(DeviceUpstreamError) as info:
            await client.fetch_status()
        return info.value

    error = run_against_device([web.get("/status", status)], scenario)

    assert error.status == 500
    assert str(error) == "Device error: Internal Server Error"


def test_malformed_body_is_unreachable():
    async def status(request):
        return web.Response(text="<html>oops</html>")

    async def scenario(client):
        with pytest.raises(DeviceUnreachable):
            await client.fetch_status()

    run_against_device([web.get("/status", status)], scenario)


def test_non_object_status_is_unreachable():
    async def status(request):
        return web.json_response([1, 2, 3])

    async def scenario(client):
        with pytest.raises(DeviceUnreachable):
            await client.fetch_status()

    run_against_device([web.get("/status", status)], scenario)


def test_plain_text_water_ack_is_a_real_activation():
    received = []

    async def water(request):
        received.append(await request.json())
        return web.Response(text="OK")

    async def scenario(client):
        return await client.trigger_water(5000)

    ack = run_against_device([web.post("/water", water)], scenario)

    assert received == [{"duration": 5000}]
    assert ack.message is None


def test_empty_water_ack_is_a_real_activation():
    async def water(request):
        return web.Response(status=204)

    async def scenario(client):
        return await client.trigger_water(3000)

    ack = run_against_device([web.post("/water", water)], scenario)

    assert ack.message is None


def test_timeout_is_unreachable():
    async def status(request):
        await asyncio.sleep(0.5)
        return web.json_response({"moisture": 10})

    async def scenario(client):
        with pytest.raises(DeviceUnreachable):
            await client.fetch_status()

    run_against_device([web.get("/status", status)], scenario, timeout_ms=50)


def test_connection_refused_is_unreachable():
    config = DeviceConfig(base_address=f"127.0.0.1:{free_port()}", request_timeout_ms=1000)

    async def _run():
        client = DeviceGatewayClient(config)
        try:
            with pytest.raises(DeviceUnreachable):
                await client.fetch_status()
        finally:
            await client.close()

    asyncio.run(_run())
