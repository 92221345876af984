"""Long-lived session with the group-chat bridge service.

The bridge keeps one authenticated chat account and exposes it over HTTP:

    POST /session/start              attach to (or boot) the account
    GET  /session/status             {"ready": bool}
    POST /groups/{group_id}/messages {"message": "..."}
    POST /session/stop

One ``ChatSession`` is shared by the whole process. Connecting happens in a
background task retried with back-off; callers wait on the readiness event
with a bounded timeout instead of polling.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from config import settings
from docnudge.errors import ChatNotReady, TransportError

_LOGGER = logging.getLogger(__name__)


class ChatSession:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        token: Optional[str] = None,
        connect_attempts: int = settings.CHAT_CONNECT_ATTEMPTS,
        timeout: float = settings.HTTP_TIMEOUT,
        http: Optional[httpx.AsyncClient] = None,
        wait=None,
    ):
        self.base_url = base_url if base_url is not None else settings.CHAT_SERVICE_URL
        self.token = token if token is not None else settings.CHAT_SERVICE_TOKEN
        self.connect_attempts = connect_attempts
        self.timeout = timeout
        self._http = http
        self._wait = wait or wait_random_exponential(multiplier=2, max=20)
        self._ready = asyncio.Event()
        self._connector: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    @property
    def connecting(self) -> bool:
        return self._connector is not None and not self._connector.done()

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
            self._http = httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=self.timeout)
        return self._http

    # ------------------------------------------------------------------
    # Connect / wait
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Begin connecting in the background; no-op if ready or already connecting."""
        if self.ready or self.connecting:
            return
        if not self.configured:
            _LOGGER.warning("[Chat] CHAT_SERVICE_URL not set, chat reminders are disabled")
            return
        self._connector = asyncio.create_task(self._connect(), name="chat-session-connect")

    async def _connect(self) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.connect_attempts),
                wait=self._wait,
                retry=retry_if_exception_type((httpx.HTTPError, ChatNotReady)),
                reraise=True,
            ):
                with attempt:
                    await self._probe()
        except (httpx.HTTPError, ChatNotReady) as exc:
            _LOGGER.error(
                "[Chat] session not ready after %d attempt(s): %s", self.connect_attempts, exc
            )
            return
        except ValueError as exc:
            _LOGGER.error("[Chat] bridge returned an unreadable status: %s", exc)
            return
        self._ready.set()
        _LOGGER.info("[Chat] session ready")

    async def _probe(self) -> None:
        client = self._client()
        resp = await client.post("/session/start")
        resp.raise_for_status()
        resp = await client.get("/session/status")
        resp.raise_for_status()
        if not resp.json().get("ready"):
            raise ChatNotReady("chat account is not authenticated yet")

    async def wait_ready(self, timeout: float) -> bool:
        """Start connecting if needed and wait at most *timeout* seconds.

        Returns early with False when the connector gives up before the
        deadline.
        """
        self.start()
        if self.ready:
            return True
        if not self.configured:
            return False
        waiter = asyncio.ensure_future(self._ready.wait())
        pending = {waiter}
        if self._connector is not None:
            pending.add(self._connector)
        try:
            await asyncio.wait(pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not waiter.done():
                waiter.cancel()
        return self.ready

    # ------------------------------------------------------------------
    # Send / stop
    # ------------------------------------------------------------------
    async def send_group_message(self, group_id: str, text: str) -> None:
        if not self.configured:
            raise TransportError("chat bridge is not configured")
        if not self.ready:
            raise ChatNotReady("chat session is not ready")
        resp = await self._client().post(f"/groups/{group_id}/messages", json={"message": text})
        if resp.is_error:
            raise TransportError(f"chat send to {group_id} failed ({resp.status_code}): {resp.text[:200]}")

    async def stop(self) -> None:
        """Cancel any pending reconnect attempt and release the session."""
        connector, self._connector = self._connector, None
        if connector is not None and not connector.done():
            connector.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await connector
        was_ready = self.ready
        self._ready.clear()
        if self._http is not None:
            if was_ready and self.configured:
                try:
                    await self._http.post("/session/stop")
                except httpx.HTTPError as exc:
                    _LOGGER.warning("[Chat] bridge refused session stop: %s", exc)
            await self._http.aclose()
            self._http = None
        _LOGGER.info("[Chat] session stopped")
