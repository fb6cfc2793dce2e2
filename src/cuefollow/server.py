# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
WebSocket bridge between a prompting session and its collaborators.

A browser (or any other client) sends the script, transcript fragments from
its recognizer, and the measured display geometry. The server runs them
through a PromptSession and streams position events, scroll frames and mode
changes back to every connected client.
"""

import asyncio
import contextlib
import json
import logging
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from . import debug_log
from .animation import FrameDriver
from .config import (
    DEFAULT_CONFIG,
    Config,
    get_follower_options,
    get_matcher_options,
    get_tracker_options,
    load_config,
    save_config,
    update_config_section,
)
from .events import Mode, ScrollFrame, TranscriptEvent
from .session import PromptSession

logger = logging.getLogger(__name__)

SETTINGS_SECTIONS: tuple[str, ...] = ("matching", "tracking", "scroll")

MessageHandler = Callable[[web.WebSocketResponse, dict[str, Any]], Awaitable[None]]


def _number(value: object, default: float) -> float:
    """Parse a numeric protocol field, falling back on anything malformed."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return default
    try:
        number = float(value)
    except ValueError:
        return default
    return number if math.isfinite(number) else default


def _offsets(value: object) -> list[float] | None:
    """Parse a list of per-word offsets, or None if absent or malformed."""
    if not isinstance(value, list) or not value:
        return None
    offsets: list[float] = []
    for item in value:
        number = _number(item, math.nan)
        if math.isnan(number):
            return None
        offsets.append(number)
    return offsets


class WebServer:
    """
    Serves the session over WebSocket and a few JSON endpoints.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        config: Config | None = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.config: Config = config or DEFAULT_CONFIG
        self._clock = clock
        self.app: web.Application = web.Application()
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None

        self.script_text: str = ""
        self.session: PromptSession = self._create_session()
        self.driver: FrameDriver = FrameDriver(self._on_tick, fps=float(self.config.get("fps", 60)))
        self._last_frame: ScrollFrame | None = None

        self._setup_routes()
        self.app.on_startup.append(self._start_frames)
        self.app.on_cleanup.append(self._stop_frames)

    def _create_session(self) -> PromptSession:
        session = PromptSession(self.script_text, self.config, clock=self._clock)
        self._pending_modes: list[Mode] = []
        session.subscribe_mode(self._pending_modes.append)
        return session

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get('/ws', self._handle_websocket)
        self.app.router.add_get('/state', self._handle_get_state)
        self.app.router.add_post('/script', self._handle_script_upload)
        self.app.router.add_get('/settings', self._handle_get_settings)
        self.app.router.add_post('/settings', self._handle_settings)

    async def _start_frames(self, _app: web.Application) -> None:
        self.driver.start()

    async def _stop_frames(self, _app: web.Application) -> None:
        await self.driver.stop()
        debug_log.flush()

    def _script_words(self) -> list[dict[str, object]]:
        return [
            {
                "index": word.index,
                "text": word.text,
                "charStart": word.char_start,
                "charEnd": word.char_end,
            }
            for word in self.session.matcher.script.words
        ]

    def _settings(self) -> dict[str, object]:
        return {
            section: dict(self.config.get(section, DEFAULT_CONFIG[section]))  # type: ignore[literal-required]
            for section in SETTINGS_SECTIONS
        }

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connections for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            # Send current state
            await ws.send_json({
                "type": "init",
                "script": self.script_text,
                "words": self._script_words(),
                "settings": self._settings(),
                "state": self.session.snapshot(),
            })

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("Ignoring malformed WebSocket message")
                        continue
                    if isinstance(data, dict):
                        await self._handle_ws_message(ws, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.warning("WebSocket error: %s", ws.exception())
        finally:
            self.websockets.discard(ws)
            logger.info("WebSocket disconnected. Total: %d", len(self.websockets))

        return ws

    async def _handle_ws_message(self, ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle incoming WebSocket messages using dispatch pattern."""
        msg_type: object | None = data.get("type")
        if not msg_type:
            return

        # Message type to handler dispatch
        handlers: dict[str, MessageHandler] = {
            "script": self._on_script_message,
            "transcript": self._on_transcript_message,
            "geometry": self._on_geometry_message,
            "caret": self._on_caret_message,
            "reset": self._on_reset_message,
        }

        handler = handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler:
            await handler(ws, data)
        else:
            logger.warning("Unhandled WebSocket message: %s", msg_type)

    async def _on_script_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle script update message."""
        await self.load_script(str(data.get("text", "")))

    async def _on_transcript_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a transcript fragment from the client's recognizer."""
        event = TranscriptEvent(
            text=str(data.get("text", "")),
            is_final=bool(data.get("isFinal", False))
        )
        position = self.session.handle_transcript(event)
        if position is not None:
            await self.broadcast(position.to_message())
        await self._flush_modes()

    async def _on_geometry_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle measured display layout."""
        self.session.set_geometry(
            viewport_height=_number(data.get("viewportHeight"), 0.0),
            content_height=_number(data.get("contentHeight"), 0.0),
            word_offsets=_offsets(data.get("wordOffsets"))
        )

    async def _on_caret_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle caret line position change."""
        self.session.set_caret_percent(
            _number(data.get("percent"), float(DEFAULT_CONFIG["scroll"]["caret_percent"]))
        )

    async def _on_reset_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        """Handle reset message."""
        self.session.reset()
        await self.broadcast({"type": "reset"})
        await self._flush_modes()

    async def load_script(self, script_text: str) -> None:
        """Load a new script and broadcast it to all clients."""
        self.script_text = script_text
        self.session.load_script(script_text)
        await self.broadcast({
            "type": "script_updated",
            "script": self.script_text,
            "words": self._script_words(),
        })
        await self._flush_modes()

    async def _handle_script_upload(self, request: web.Request) -> web.Response:
        """Handle script upload via POST."""
        try:
            data = await request.json()
        except json.JSONDecodeError:
            return web.json_response({"status": "error", "message": "Invalid JSON"}, status=400)
        if not isinstance(data, dict):
            return web.json_response({"status": "error", "message": "Expected an object"}, status=400)
        await self.load_script(str(data.get("text", "")))
        return web.json_response({"status": "ok", "wordCount": len(self.session.matcher)})

    async def _handle_get_state(self, request: web.Request) -> web.Response:
        """Get current session state."""
        return web.json_response(self.session.snapshot())

    async def _handle_get_settings(self, request: web.Request) -> web.Response:
        """Get current settings."""
        return web.json_response(self._settings())

    async def _handle_settings(self, request: web.Request) -> web.Response:
        """
        Update matching/tracking/scroll settings via POST.

        The session is rebuilt with the new settings, which restarts the
        script from its first word. With "save": true the settings are also
        written to the config file.
        """
        try:
            data = await request.json()
        except json.JSONDecodeError:
            return web.json_response({"status": "error", "message": "Invalid JSON"}, status=400)
        if not isinstance(data, dict):
            return web.json_response({"status": "error", "message": "Expected an object"}, status=400)

        config = self.config
        for section in SETTINGS_SECTIONS:
            update = data.get(section)
            if isinstance(update, dict):
                config = update_config_section(config, section, update)
        try:
            get_matcher_options(config)
            get_tracker_options(config)
            get_follower_options(config)
        except (TypeError, ValueError) as e:
            logger.warning("Rejected settings update: %s", e)
            return web.json_response({"status": "error", "message": f"Invalid settings: {e}"}, status=400)
        self.config = config

        geometry = self.session.follower.geometry
        caret_percent = self.session.follower.caret_percent
        self.session.close()
        self.session = self._create_session()
        self.session.set_geometry(geometry.viewport_height, geometry.content_height, geometry.word_offsets)
        scroll_update = data.get("scroll")
        if not (isinstance(scroll_update, dict) and "caret_percent" in scroll_update):
            # Keep a caret moved by the client since the last settings change
            self.session.set_caret_percent(caret_percent)

        saved: bool | None = None
        if data.get("save"):
            file_config = load_config()
            for section in SETTINGS_SECTIONS:
                file_config = update_config_section(
                    file_config, section, dict(self.config[section])  # type: ignore[literal-required]
                )
            saved = save_config(file_config)

        settings = self._settings()
        await self.broadcast({"type": "settings_updated", "settings": settings})
        return web.json_response({"status": "ok", "settings": settings, "saved": saved})

    async def _on_tick(self, delta_seconds: float) -> None:
        """Advance the animation and stream changed frames."""
        frame = self.session.tick(delta_seconds)
        if frame != self._last_frame:
            self._last_frame = frame
            await self.broadcast(frame.to_message())
        await self._flush_modes()

    async def _flush_modes(self) -> None:
        while self._pending_modes:
            mode = self._pending_modes.pop(0)
            await self.broadcast({"type": "mode", "mode": mode})

    async def broadcast(self, message: dict[str, object]) -> None:
        """Send a message to all connected WebSocket clients."""
        if not self.websockets:
            return

        dead: set[web.WebSocketResponse] = set()
        for ws in list(self.websockets):
            try:
                await ws.send_json(message)
            except (ConnectionError, RuntimeError) as e:
                logger.warning("Error sending to WebSocket: %s", e)
                dead.add(ws)

        self.websockets -= dead

    async def start(self) -> None:
        """Start the web server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        site: web.TCPSite = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        print(f"Web server running at http://{self.host}:{self.port}")

        # Give event loop a moment to start accepting connections
        await asyncio.sleep(0.1)

    async def stop(self) -> None:
        """Stop the web server."""
        # Close all WebSocket connections
        for ws in list(self.websockets):
            with contextlib.suppress(ConnectionError, RuntimeError):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()
            self.runner = None
        self.session.close()
