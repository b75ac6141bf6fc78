"""Best-effort delivery of feedback to the admin endpoint.

Each feedback entry is POSTed as JSON along with the team and department
ids. Delivery runs in the background and never raises: an unreachable
endpoint or a non-2xx status only gets logged.
"""

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)


class FeedbackSink:
    """Posts JSON payloads to the configured feedback endpoint.

    ``settings`` is a zero-argument callable returning the current
    Settings, so endpoint changes apply without rebuilding the sink.
    """

    def __init__(
        self,
        settings: Callable[[], Any],
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._pending: set[asyncio.Task] = set()
        self._threads: list[threading.Thread] = []
        self._threads_lock = threading.Lock()

    async def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http

    def _payload(self, body: dict[str, Any]) -> dict[str, Any]:
        settings = self._settings()
        return {
            **body,
            "teamId": settings.team_id,
            "departmentId": settings.department_id,
        }

    async def post(self, body: dict[str, Any]) -> bool:
        """POST a body to the endpoint. Returns True on a 2xx response."""
        if not self._settings().feedback_endpoint:
            return False
        return await self._send(await self._client(), body)

    async def _send(self, client: httpx.AsyncClient, body: dict[str, Any]) -> bool:
        endpoint = self._settings().feedback_endpoint
        if not endpoint:
            return False

        try:
            resp = await client.post(endpoint, json=self._payload(body))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug(f"Feedback endpoint unreachable: {e}")
            return False

        if not resp.is_success:
            logger.warning(f"Feedback endpoint returned {resp.status_code}")
            return False
        return True

    def submit(self, body: dict[str, Any]) -> None:
        """Schedule delivery without waiting for it.

        Inside an event loop this is a background task (see ``drain``).
        Sync callers get a daemon thread with its own client (see ``join``).
        """
        if not self._settings().feedback_endpoint:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            thread = threading.Thread(
                target=self._deliver_detached, args=(body,),
                name="simpllm-feedback", daemon=True,
            )
            with self._threads_lock:
                self._threads = [t for t in self._threads if t.is_alive()]
                self._threads.append(thread)
            thread.start()
            return

        task = loop.create_task(self.post(body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _deliver_detached(self, body: dict[str, Any]) -> None:
        asyncio.run(self._post_detached(body))

    async def _post_detached(self, body: dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            await self._send(client, body)

    def join(self, timeout: float | None = None) -> None:
        """Wait for deliveries started from sync callers."""
        with self._threads_lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)

    async def request_credits(self, reason: str, current_usage: float) -> bool:
        """Send an extra-credit request to the admin endpoint."""
        return await self.post({
            "type": "credit_request",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "currentUsage": current_usage,
            "reason": reason,
        })

    async def drain(self) -> None:
        """Wait for background deliveries to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None
