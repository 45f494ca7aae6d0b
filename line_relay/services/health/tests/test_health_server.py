"""Tests for HealthCheckServer."""

from __future__ import annotations

import asyncio
import json

import pytest

from line_relay.services.health.health_server import HealthCheckServer
from line_relay.services.store.memory_store import MemoryStore


async def _get(port: int, path: str, method: str = "GET") -> tuple[int, dict]:
    """Make a request and return (status_code, json_body)."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        writer.write(f"{method} {path} HTTP/1.1\r\nHost: localhost\r\n\r\n".encode())
        await writer.drain()
        data = await asyncio.wait_for(reader.read(4096), timeout=5.0)
        text = data.decode("utf-8")
        header_end = text.index("\r\n\r\n")
        status_line = text.split("\r\n")[0]
        status_code = int(status_line.split()[1])
        body = json.loads(text[header_end + 4 :])
        return status_code, body
    finally:
        writer.close()
        await writer.wait_closed()


@pytest.fixture
async def server():
    srv = HealthCheckServer(port=0, check_timeout=0.2)
    await srv.start()
    yield srv
    await srv.stop()


@pytest.mark.asyncio
async def test_liveness_returns_ok(server: HealthCheckServer) -> None:
    status, body = await _get(server.bound_port, "/health/live")
    assert status == 200
    assert body["status"] == "ok"


@pytest.mark.asyncio
async def test_readiness_runs_sync_and_async_checks(server: HealthCheckServer) -> None:
    server.register_check("store", MemoryStore().health_check)
    server.register_check("flag", lambda: True)
    status, body = await _get(server.bound_port, "/health/ready")
    assert status == 200
    assert body["checks"] == {"store": "ok", "flag": "ok"}


@pytest.mark.asyncio
async def test_readiness_check_fails(server: HealthCheckServer) -> None:
    async def store_down() -> bool:
        return False

    server.register_check("store", store_down)
    status, body = await _get(server.bound_port, "/health/ready")
    assert status == 503
    assert body["checks"]["store"] == "fail"


@pytest.mark.asyncio
async def test_slow_check_times_out(server: HealthCheckServer) -> None:
    async def hangs() -> bool:
        await asyncio.sleep(5)
        return True

    server.register_check("store", hangs)
    status, body = await _get(server.bound_port, "/health/ready")
    assert status == 503
    assert body["checks"]["store"].startswith("error")


@pytest.mark.asyncio
async def test_startup_before_and_after_mark(server: HealthCheckServer) -> None:
    status, _ = await _get(server.bound_port, "/health/startup")
    assert status == 503
    server.mark_started()
    status, body = await _get(server.bound_port, "/health/startup")
    assert status == 200
    assert body["status"] == "ok"


@pytest.mark.asyncio
async def test_mark_not_ready(server: HealthCheckServer) -> None:
    server.register_check("store", lambda: True)
    server.mark_not_ready()
    status, body = await _get(server.bound_port, "/health/ready")
    assert status == 503
    assert body["reason"] == "shutting down"


@pytest.mark.asyncio
async def test_unknown_path_and_method(server: HealthCheckServer) -> None:
    assert (await _get(server.bound_port, "/unknown"))[0] == 404
    assert (await _get(server.bound_port, "/health/live", method="POST"))[0] == 405
