"""
Dashboard — operator JSON API for the fleet.
Uses aiohttp.web to expose stats, slot listing and control endpoints.
"""

from __future__ import annotations
import json
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, TYPE_CHECKING
from aiohttp import web
from fleet.errors import ErrorCode, FleetError
import logging

if TYPE_CHECKING:
    from fleet.manager import FleetManager

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorCode.VALIDATION.value: 400,
    ErrorCode.NOT_FOUND.value: 404,
    ErrorCode.CAPACITY.value: 409,
}


class FleetEncoder(json.JSONEncoder):
    """JSON encoder that handles enums and datetimes."""
    def default(self, o):
        if isinstance(o, Enum):
            return o.value
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def json_response(data, status=200):
    return web.Response(
        text=json.dumps(data, cls=FleetEncoder),
        content_type="application/json",
        status=status,
    )


def as_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class Dashboard:
    """Web API server."""

    def __init__(self, manager: "FleetManager", host: str = "0.0.0.0", port: int = 5000):
        self.manager = manager
        self.host = host
        self.port = port
        self.app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._setup_routes()

    def _setup_routes(self):
        r = self.app.router
        r.add_get("/api/stats", self._api_stats)
        r.add_get("/api/bots", self._api_bots)
        r.add_get("/api/history", self._api_history)
        r.add_get("/api/console", self._api_console)
        r.add_post("/api/console/clear", self._api_console_clear)
        r.add_post("/api/bots/add", self._api_add)
        r.add_post("/api/bots/add-custom", self._api_add_custom)
        r.add_post("/api/bots/remove", self._api_remove)
        r.add_post("/api/bots/remove-all", self._api_remove_all)
        r.add_get("/api/bot/{id}/state", self._api_bot_state)
        r.add_post("/api/bot/{id}/stop", self._api_bot_stop)
        r.add_post("/api/bot/{id}/start", self._api_bot_start)
        r.add_post("/api/bot/{id}/toggle", self._api_bot_toggle)
        r.add_post("/api/command", self._api_command)
        r.add_post("/api/update-server", self._api_update_server)
        r.add_post("/api/settings", self._api_settings)

    async def start(self):
        """Start the web server."""
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"[DASHBOARD] Running on http://{self.host}:{self.port}")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def _call(self, handler: Callable[[], Any]) -> web.Response:
        """Run a manager call, mapping fleet errors to JSON responses."""
        try:
            return json_response(handler())
        except FleetError as e:
            logger.info(f"[DASHBOARD] Rejected: {e.message}")
            return json_response(e.to_dict(), status=ERROR_STATUS.get(e.code, 400))
        except Exception as e:
            logger.error(f"[DASHBOARD] API error: {e}", exc_info=True)
            return json_response({"success": False, "error": str(e)}, status=500)

    @staticmethod
    async def _body(request: web.Request) -> dict:
        if not request.can_read_body:
            return {}
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return {}
        return data if isinstance(data, dict) else {}

    # ─── Read side ───

    async def _api_stats(self, request: web.Request) -> web.Response:
        return await self._call(self.manager.stats)

    async def _api_bots(self, request: web.Request) -> web.Response:
        return await self._call(self.manager.list_slots)

    async def _api_history(self, request: web.Request) -> web.Response:
        return await self._call(self.manager.history)

    async def _api_console(self, request: web.Request) -> web.Response:
        limit = request.query.get("limit", "30")
        return await self._call(lambda: self.manager.console(int(limit) if limit.isdigit() else 30))

    async def _api_console_clear(self, request: web.Request) -> web.Response:
        def clear():
            self.manager.clear_console()
            return {"success": True}
        return await self._call(clear)

    async def _api_bot_state(self, request: web.Request) -> web.Response:
        slot_id = request.match_info["id"]
        return await self._call(lambda: {"state": self.manager.slot_state(slot_id)})

    # ─── Adding / removing ───

    async def _api_add(self, request: web.Request) -> web.Response:
        body = await self._body(request)

        def add():
            ids = self.manager.add_random_slots(body.get("count", 1))
            return {"success": True, "botIds": ids, "message": f"Adding {len(ids)} bot(s)"}
        return await self._call(add)

    async def _api_add_custom(self, request: web.Request) -> web.Response:
        body = await self._body(request)

        def add():
            slot_id = self.manager.add_custom_slot(body.get("name"), body.get("uuid"))
            return {"success": True, "botId": slot_id}
        return await self._call(add)

    async def _api_remove(self, request: web.Request) -> web.Response:
        body = await self._body(request)

        def remove():
            self.manager.remove_slot(body.get("botId"), permanent=bool(as_bool(body.get("permanent"))))
            return {"success": True}
        return await self._call(remove)

    async def _api_remove_all(self, request: web.Request) -> web.Response:
        return await self._call(lambda: {"success": True, "removed": self.manager.remove_all_slots()})

    # ─── Control ───

    async def _api_bot_stop(self, request: web.Request) -> web.Response:
        slot_id = request.match_info["id"]
        return await self._call(lambda: {"success": self.manager.stop_slot(slot_id), "state": "STOPPED"})

    async def _api_bot_start(self, request: web.Request) -> web.Response:
        slot_id = request.match_info["id"]
        return await self._call(lambda: {"success": self.manager.start_slot(slot_id), "state": "RUNNING"})

    async def _api_bot_toggle(self, request: web.Request) -> web.Response:
        slot_id = request.match_info["id"]
        return await self._call(lambda: {"success": True, "state": self.manager.toggle_slot(slot_id)})

    async def _api_command(self, request: web.Request) -> web.Response:
        body = await self._body(request)

        def send():
            sent = self.manager.send_command(body.get("command"), body.get("target", "all"))
            return {"success": True, "sentTo": sent}
        return await self._call(send)

    # ─── Server & settings ───

    async def _api_update_server(self, request: web.Request) -> web.Response:
        body = await self._body(request)

        def update():
            self.manager.change_server(body.get("ip"), body.get("port"))
            return {"success": True, "history": self.manager.history()}
        return await self._call(update)

    async def _api_settings(self, request: web.Request) -> web.Response:
        body = await self._body(request)

        def update():
            settings = self.manager.update_settings(
                auto_reconnect=as_bool(body.get("autoReconnect")),
                anti_afk=as_bool(body.get("antiAfk")),
                chat_log=as_bool(body.get("chatLog")),
            )
            return {
                "success": True,
                "autoReconnect": settings.auto_reconnect,
                "antiAfk": settings.anti_afk,
                "chatLog": settings.chat_log,
            }
        return await self._call(update)
