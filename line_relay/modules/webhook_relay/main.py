"""Webhook Relay service module.

Receives order-status webhooks from the shipping provider and relays them to
the LINE group mapped to the sending account, with tracking statistics,
order deduplication and optional batching. Also hosts the LINE bot callback
and the one-time group setup endpoints.

Endpoints::

    POST /webhook                  order-status webhook
    GET  /health                   liveness
    GET  /tracking-report          detailed duplicate report   (?date=YYYY-MM-DD&top=N)
    GET  /tracking-report/stats    daily counters              (?date=YYYY-MM-DD)
    GET  /groups-report            senders grouped by LINE group
    GET  /batch-status             queued batches per group
    GET  /batch-status/stats       batch counters and config
    POST /batch-status/flush       flush every batch           (admin secret)
    POST /clear-stats              delete tracking data        (admin secret)
    POST /line/webhook             LINE callback events
    GET  /setup/{group_id}         validate a setup link       (?token=)
    POST /setup/{group_id}         complete setup              {token, userId, apiKey}
"""

from __future__ import annotations

import hmac
import re
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from aiohttp import web

from line_relay.config.context import ModuleConfig
from line_relay.modules.base import AsyncModule
from line_relay.pipeline.batcher import BatchAccumulator, BatchConfig
from line_relay.pipeline.dedup import OrderDedupGate
from line_relay.pipeline.events import MalformedPayload, parse_webhook
from line_relay.pipeline.line_events import LineEventHandler
from line_relay.pipeline.relay import NotificationRelay
from line_relay.pipeline.routing import (
    IdentityRouter,
    StaticIdentityResolver,
    StoreIdentityResolver,
    load_static_mapping,
)
from line_relay.pipeline.setup_sessions import SetupSessionManager, validate_credentials
from line_relay.pipeline.signature_middleware import create_signature_middleware
from line_relay.pipeline.tracking_monitor import TrackingMonitor
from line_relay.services.chat.interface import ChatClientInterface
from line_relay.services.lifecycle.lifecycle_manager import LifecycleManager
from line_relay.services.logger.factory import LoggerFactory
from line_relay.services.logger.interface import LoggingInterface
from line_relay.services.metrics.interface import MetricsInterface
from line_relay.services.orders.interface import OrderDetailsInterface
from line_relay.services.secrets.interface import SecretsInterface
from line_relay.services.store.interface import StoreInterface

DEFAULT_BASE_URL = "https://webhook-line-notifier.fly.dev"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Shown to the person filling in the setup form
SETUP_ERRORS: dict[str, str] = {
    "missing_fields": "กรุณากรอกข้อมูลให้ครบถ้วน",
    "session_not_found": "ไม่พบข้อมูลการตั้งค่า",
    "invalid_token": "ลิงก์ไม่ถูกต้อง",
    "session_already_used": "ลิงก์นี้ถูกใช้งานแล้ว",
    "session_expired": "ลิงก์หมดอายุแล้ว",
    "invalid_user_id": 'รหัสผู้ใช้ไม่ถูกต้อง ควรขึ้นต้นด้วย "user-" และมีความยาวมากกว่า 10 ตัวอักษร',
    "invalid_api_key": 'รหัส API ไม่ถูกต้อง ควรขึ้นต้นด้วย "eyJ" และมีความยาวมากกว่า 50 ตัวอักษร',
    "save_failed": "เกิดข้อผิดพลาดในการบันทึกข้อมูล กรุณาลองใหม่อีกครั้ง",
}
SETUP_DONE = "ตั้งค่าเสร็จสิ้น! ตอนนี้คุณจะได้รับการแจ้งเตือนในกลุ่มนี้แล้ว"


class WebhookRelayModule(AsyncModule):
    log: LoggingInterface

    def __init__(
        self,
        config: ModuleConfig,
        logger: LoggerFactory,
        secrets: SecretsInterface,
        store: StoreInterface,
        chat: ChatClientInterface,
        orders: OrderDetailsInterface,
        metrics: MetricsInterface,
        lifecycle: LifecycleManager,
    ) -> None:
        self.config = config
        self.logger = logger
        self.secrets = secrets
        self.store = store
        self.chat = chat
        self.orders = orders
        self.metrics = metrics
        self.lifecycle = lifecycle
        self._runner: web.AppRunner | None = None

    async def initialize(self) -> None:
        self.log = self.logger.for_component("webhook_relay")
        self.lifecycle.set_logger(self.log)
        self.port = self.config.get("port", 3000)
        self.report_top = self.config.get("report-top", 10)
        self.tz = ZoneInfo(self.config.get("timezone", "Asia/Bangkok"))
        self.admin_secret = self.secrets.get_non_empty("ADMIN_SECRET")

        await self.store.connect()
        await self.chat.connect()
        await self.orders.connect()

        self.tracking = TrackingMonitor(self.store, self.logger.for_component("tracking"), self.tz)
        static = load_static_mapping(self.config.get("mapping-file"), self.logger.for_component("routing"))
        self.router = IdentityRouter(
            [StoreIdentityResolver(self.store), StaticIdentityResolver(static)],
            self.logger.for_component("routing"),
        )
        self.batcher = BatchAccumulator(
            self.store,
            self.chat,
            self.logger.for_component("batcher"),
            self.metrics,
            BatchConfig(
                enabled=self.config.get("batch-enabled", False),
                size=self.config.get("batch-size", 10),
                interval=float(self.config.get("batch-interval", 900.0)),
            ),
            self.tz,
        )
        self.relay = NotificationRelay(
            tracking=self.tracking,
            router=self.router,
            gate=OrderDedupGate(self.store, self.logger.for_component("dedup")),
            orders=self.orders,
            batcher=self.batcher,
            chat=self.chat,
            log=self.log,
            metrics=self.metrics,
            template=self.secrets.get_non_empty("MESSAGE_TEMPLATE"),
            tracking_blocks_delivery=self.config.get("tracking-blocks-delivery", False),
        )
        self.sessions = SetupSessionManager(self.store, self.logger.for_component("setup"))
        self.line_events = LineEventHandler(
            self.sessions,
            self.chat,
            self.logger.for_component("line"),
            self.secrets.get_non_empty("BASE_URL") or DEFAULT_BASE_URL,
        )

    async def validate(self) -> None:
        if self.batcher.config.size < 1:
            raise ValueError("--batch-size must be at least 1")
        if self.batcher.config.interval <= 0:
            raise ValueError("--batch-interval must be positive")

    async def execute(self) -> int:
        if self.batcher.config.enabled:
            await self.batcher.restore_timers()

        app = self._create_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()

        self.log.info("Webhook relay listening", port=self.port,
                      batching=self.batcher.config.enabled, timezone=str(self.tz))
        self.lifecycle.on_shutdown(self._stop_server)

        await self.lifecycle.wait_for_shutdown()
        return 0

    async def teardown(self) -> None:
        await self._stop_server()
        await self.batcher.close()
        await self.orders.disconnect()
        await self.chat.disconnect()
        await self.store.disconnect()

    async def _stop_server(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    def _create_app(self) -> web.Application:
        app = web.Application(middlewares=[
            create_signature_middleware(
                self.secrets.get_non_empty("WEBHOOK_SECRET"),
                self.secrets.get_non_empty("LINE_CHANNEL_SECRET"),
            ),
        ])
        app.router.add_post("/webhook", self._webhook)
        app.router.add_get("/health", self._health)
        app.router.add_get("/tracking-report", self._tracking_report)
        app.router.add_get("/tracking-report/stats", self._tracking_stats)
        app.router.add_get("/groups-report", self._groups_report)
        app.router.add_get("/batch-status", self._batch_status)
        app.router.add_get("/batch-status/stats", self._batch_stats)
        app.router.add_post("/batch-status/flush", self._batch_flush)
        app.router.add_post("/clear-stats", self._clear_stats)
        app.router.add_post("/line/webhook", self._line_webhook)
        app.router.add_get("/setup/{group_id}", self._setup_check)
        app.router.add_post("/setup/{group_id}", self._setup_submit)
        return app

    # ── Webhook ───────────────────────────────────────────────────────────

    async def _webhook(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except ValueError:
            return _error(400, "Invalid JSON body")

        event = parse_webhook(body)
        if isinstance(event, MalformedPayload):
            return _error(400, event.reason)

        try:
            outcome = await self.relay.handle(event)
        except Exception as exc:
            self.log.error("Webhook processing failed", tracking_no=event.tracking_no,
                           order_id=event.order_id, error=str(exc))
            return _error(500, str(exc))
        return web.json_response(outcome.to_dict())

    async def _health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "store": await self.store.health_check(),
            "batching": self.batcher.config.enabled,
        })

    # ── Reports ───────────────────────────────────────────────────────────

    async def _tracking_report(self, request: web.Request) -> web.Response:
        date = request.query.get("date")
        if date is not None and not _DATE_RE.match(date):
            return _error(400, "date must be YYYY-MM-DD")
        try:
            top = int(request.query.get("top", self.report_top))
        except ValueError:
            return _error(400, "top must be an integer")
        if top < 1:
            return _error(400, "top must be at least 1")
        report = await self.tracking.get_detailed_report(date, top=top)
        return web.json_response({"success": True, "date": date or self.tracking.today(), **report})

    async def _tracking_stats(self, request: web.Request) -> web.Response:
        date = request.query.get("date")
        if date is not None and not _DATE_RE.match(date):
            return _error(400, "date must be YYYY-MM-DD")
        stats = await self.tracking.get_stats(date)
        if stats is None:
            return _error(503, "Statistics unavailable")
        return web.json_response({"success": True, "stats": stats.to_dict()})

    async def _groups_report(self, request: web.Request) -> web.Response:
        report = await self.router.groups_report()
        return web.json_response({
            "success": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **report,
        })

    async def _batch_status(self, request: web.Request) -> web.Response:
        try:
            status = await self.batcher.get_status()
        except Exception as exc:
            self.log.error("Batch status unavailable", error=str(exc))
            return _error(500, str(exc))
        return web.json_response({
            "success": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **status,
        })

    async def _batch_stats(self, request: web.Request) -> web.Response:
        return web.json_response({
            "success": True,
            "stats": self.batcher.stats.to_dict(),
            "config": self.batcher.config.to_dict(),
        })

    # ── Admin ─────────────────────────────────────────────────────────────

    async def _batch_flush(self, request: web.Request) -> web.Response:
        denied = await self._check_admin(request)
        if denied is not None:
            return denied
        try:
            flushed = await self.batcher.flush_all()
        except Exception as exc:
            self.log.error("Flush all batches failed", error=str(exc))
            return _error(500, str(exc))
        return web.json_response({"success": True, "batches_flushed": flushed})

    async def _clear_stats(self, request: web.Request) -> web.Response:
        denied = await self._check_admin(request)
        if denied is not None:
            return denied
        try:
            deleted = await self.tracking.clear()
        except Exception as exc:
            self.log.error("Clear tracking statistics failed", error=str(exc))
            return _error(500, str(exc))
        return web.json_response({"success": True, "keys_deleted": deleted})

    async def _check_admin(self, request: web.Request) -> web.Response | None:
        """Return a 401 response unless the request carries the admin secret."""
        if self.admin_secret is None:
            self.log.warn("Admin action rejected: ADMIN_SECRET not configured", path=request.path)
            return _error(401, "Admin actions are disabled")

        supplied = request.query.get("secret")
        if supplied is None and request.can_read_body:
            body = await _read_fields(request)
            supplied = body.get("secret")
        if not isinstance(supplied, str) or not hmac.compare_digest(supplied, self.admin_secret):
            self.log.warn("Admin action rejected: bad secret", path=request.path)
            return _error(401, "Unauthorized")
        return None

    # ── LINE bot ──────────────────────────────────────────────────────────

    async def _line_webhook(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except ValueError:
            return _error(400, "Invalid JSON body")
        events = body.get("events") if isinstance(body, dict) else None
        if not isinstance(events, list):
            events = []
        replies = await self.line_events.handle_events(events)
        return web.json_response({"success": True, "events": len(events), "replies": replies})

    # ── Setup ─────────────────────────────────────────────────────────────

    async def _setup_check(self, request: web.Request) -> web.Response:
        group_id = request.match_info["group_id"]
        token = request.query.get("token")
        if not token:
            return _setup_error(400, "invalid_token")
        validation = await self.sessions.validate(group_id, token)
        if not validation.valid:
            return _setup_error(400, validation.reason)
        return web.json_response({
            "success": True,
            "group_id": group_id,
            "expires_at": validation.session.expires_at,
        })

    async def _setup_submit(self, request: web.Request) -> web.Response:
        group_id = request.match_info["group_id"]
        fields = await _read_fields(request)
        token = str(fields.get("token") or "").strip()
        user_id = str(fields.get("userId") or "").strip()
        api_key = str(fields.get("apiKey") or "").strip()
        if not token or not user_id or not api_key:
            return _setup_error(400, "missing_fields")

        validation = await self.sessions.validate(group_id, token)
        if not validation.valid:
            return _setup_error(400, validation.reason)

        problem = validate_credentials(user_id, api_key)
        if problem is not None:
            return _setup_error(400, problem)

        try:
            await self.sessions.complete(group_id, user_id, api_key)
        except Exception as exc:
            self.log.error("Setup submission failed", group_id=group_id, user_id=user_id, error=str(exc))
            return _setup_error(500, "save_failed")
        return web.json_response({"success": True, "message": SETUP_DONE})


def _error(status: int, error: str) -> web.Response:
    return web.json_response({"success": False, "error": error}, status=status)


def _setup_error(status: int, reason: str | None) -> web.Response:
    reason = reason or "session_not_found"
    return web.json_response(
        {"success": False, "reason": reason, "error": SETUP_ERRORS.get(reason, reason)},
        status=status,
    )


async def _read_fields(request: web.Request) -> dict[str, Any]:
    """Body fields from a JSON or form-encoded request; {} when unreadable."""
    if request.content_type == "application/json":
        try:
            body = await request.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
    form = await request.post()
    return dict(form)


module_class = WebhookRelayModule
