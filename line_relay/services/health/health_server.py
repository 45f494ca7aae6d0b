"""Lightweight HTTP health check server using raw asyncio.

Serves /health/live, /health/ready, and /health/startup endpoints on a port
separate from the relay's own HTTP surface. Readiness runs every registered
check; a check may be a plain callable or a coroutine function (the store's
``health_check`` pings Redis).
"""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Awaitable, Callable, Union

HealthCheck = Union[Callable[[], bool], Callable[[], Awaitable[bool]]]

_REASONS = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    503: "Service Unavailable",
}


class HealthCheckServer:
    def __init__(self, port: int = 8080, check_timeout: float = 2.0) -> None:
        self._port = port
        self._check_timeout = check_timeout
        self._checks: dict[str, HealthCheck] = {}
        self._started = False
        self._ready = True
        self._server: asyncio.Server | None = None

    @property
    def bound_port(self) -> int | None:
        """Actual listening port (useful when constructed with port 0)."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    def register_check(self, name: str, check: HealthCheck) -> None:
        """Register a named health check (e.g. 'store')."""
        self._checks[name] = check

    def mark_started(self) -> None:
        """Called once the module has initialized."""
        self._started = True

    def mark_not_ready(self) -> None:
        """Called on shutdown signal to fail readiness checks."""
        self._ready = False

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle_connection, "0.0.0.0", self._port
        )

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def run_checks(self) -> tuple[bool, dict[str, str]]:
        """Run every check, returning (all_ok, per-check result)."""
        checks: dict[str, str] = {}
        all_ok = True
        for name, check_fn in self._checks.items():
            try:
                result = check_fn()
                if inspect.isawaitable(result):
                    result = await asyncio.wait_for(result, timeout=self._check_timeout)
            except Exception as exc:
                checks[name] = f"error: {exc}"
                all_ok = False
                continue
            checks[name] = "ok" if result else "fail"
            all_ok = all_ok and bool(result)
        return all_ok, checks

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            request_line = await asyncio.wait_for(reader.readline(), timeout=5.0)
            if not request_line:
                return
            parts = request_line.decode("utf-8", errors="replace").strip().split()
            if len(parts) < 2:
                self._send_response(writer, 400, {"error": "bad request"})
                return

            method, path = parts[0], parts[1]

            # Consume remaining headers
            while True:
                line = await asyncio.wait_for(reader.readline(), timeout=5.0)
                if line in (b"\r\n", b"\n", b""):
                    break

            if method != "GET":
                self._send_response(writer, 405, {"error": "method not allowed"})
            elif path == "/health/live":
                self._send_response(writer, 200, {"status": "ok"})
            elif path == "/health/ready":
                await self._handle_ready(writer)
            elif path == "/health/startup":
                self._handle_startup(writer)
            else:
                self._send_response(writer, 404, {"error": "not found"})
        except (asyncio.TimeoutError, ConnectionError):
            pass
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _handle_ready(self, writer: asyncio.StreamWriter) -> None:
        if not self._ready:
            self._send_response(writer, 503, {"status": "not ready", "reason": "shutting down"})
            return

        all_ok, checks = await self.run_checks()
        if all_ok:
            self._send_response(writer, 200, {"status": "ok", "checks": checks})
        else:
            self._send_response(writer, 503, {"status": "not ready", "checks": checks})

    def _handle_startup(self, writer: asyncio.StreamWriter) -> None:
        if self._started:
            self._send_response(writer, 200, {"status": "ok"})
        else:
            self._send_response(writer, 503, {"status": "not started"})

    def _send_response(
        self, writer: asyncio.StreamWriter, status: int, body: dict
    ) -> None:
        payload = json.dumps(body).encode("utf-8")
        header = (
            f"HTTP/1.1 {status} {_REASONS.get(status, 'Unknown')}\r\n"
            f"Content-Type: application/json\r\n"
            f"Content-Length: {len(payload)}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(header.encode("utf-8") + payload)
