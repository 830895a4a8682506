"""
Reconnecting client for the /ws alert relay.

Keeps one connection open, pings on connect, and hands decoded frames to a
callback. After a drop it retries with a linearly growing delay
(base_delay * attempt) and gives up after max_attempts; a successful connect
resets the counter. No jitter and no retry beyond the ceiling: a caller that
wants to resume has to call run() again.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
import websockets
from websockets.exceptions import WebSocketException

logger = structlog.get_logger()

MessageHandler = Callable[[dict[str, Any]], None]


class AlertMirror:
    """Best-effort local copy of alerts and agent states, fed by relay messages."""

    def __init__(self, max_alerts: int = 200):
        self.max_alerts = max_alerts
        self.alerts: list[dict[str, Any]] = []
        self.agent_status: dict[str, str] = {}
        self.connected = False

    def apply(self, message: dict[str, Any]) -> None:
        message_type = message.get("type")
        if message_type == "initial_data":
            self.alerts = list(message.get("alerts") or [])[: self.max_alerts]
        elif message_type == "new_alert":
            alert = message.get("data") or {}
            self.alerts = [alert, *[a for a in self.alerts if a.get("id") != alert.get("id")]][: self.max_alerts]
        elif message_type == "alert_status":
            data = message.get("data") or {}
            for alert in self.alerts:
                if alert.get("id") == data.get("alertId"):
                    alert["status"] = data.get("status")
        elif message_type == "agent_status":
            data = message.get("data") or {}
            if data.get("agentId"):
                self.agent_status[data["agentId"]] = data.get("status")
        elif message_type == "pong":
            pass
        else:
            logger.debug("ws_client.unhandled_message", message_type=message_type)


class AlertStreamClient:
    def __init__(
        self,
        url: str,
        on_message: MessageHandler,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        connect: Callable[[str], Any] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.url = url
        self.on_message = on_message
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.attempts = 0
        self.connected = False
        self._connect = connect or websockets.connect
        self._sleep = sleep
        self._ws = None
        self._closing = False

    async def run(self) -> None:
        """Connect and consume until closed or the retry ceiling is reached."""
        while not self._closing:
            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    self.connected = True
                    self.attempts = 0
                    logger.info("ws_client.connected", url=self.url)
                    await self.send({"type": "ping"})
                    async for raw in ws:
                        self._dispatch(raw)
            except (OSError, WebSocketException) as exc:
                logger.warning("ws_client.connection_error", url=self.url, error=str(exc))
            finally:
                self._ws = None
                self.connected = False

            if self._closing:
                break
            if self.attempts >= self.max_attempts:
                logger.warning("ws_client.max_reconnect_attempts_reached", attempts=self.attempts)
                break

            self.attempts += 1
            delay = self.base_delay * self.attempts
            logger.info("ws_client.reconnecting", attempt=self.attempts, max_attempts=self.max_attempts, delay=delay)
            await self._sleep(delay)

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.error("ws_client.invalid_message", raw=str(raw)[:200])
            return
        if isinstance(message, dict):
            self.on_message(message)

    async def send(self, message: dict[str, Any]) -> bool:
        if self._ws is None:
            return False
        await self._ws.send(json.dumps(message))
        return True

    async def subscribe(self, channel: str) -> bool:
        return await self.send({"type": "subscribe", "channel": channel})

    async def close(self) -> None:
        self._closing = True
        if self._ws is not None:
            await self._ws.close()
