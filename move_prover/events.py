"""
events.py — Progress event channel and delivery subscribers.

The pipeline never calls transport code. It publishes ProgressEvent values
onto a ProgressChannel (one per proof request); whoever wants them
subscribes a callable. WebhookSink is one such subscriber: it forwards events
as JSON over HTTP from a background task so a slow endpoint never stalls
proof generation.

Channel invariants:
  1. Progress values are non-decreasing (a lower value is raised to the floor).
  2. At most one terminal event; publishing after it raises RuntimeError.
  3. rebase() maps a second pipeline run's 0-100 onto [floor, 100].
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import httpx

from move_prover.models import ProgressEvent, ProofMode

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

# Retry configuration for transient webhook errors (5xx / connection).
MAX_RETRIES = 2
RETRY_BASE_DELAY_S = 0.5  # Exponential backoff: 0.5s, 1s
WEBHOOK_TIMEOUT_S = 5.0


class ProgressChannel:
    """Ordered, monotonic event stream for one proof request."""

    def __init__(self, proof_id: str, subscribers: Optional[list[ProgressCallback]] = None):
        self.proof_id = proof_id
        self._subscribers: list[ProgressCallback] = list(subscribers or [])
        self._floor = 0.0
        self._base = 0.0
        self._terminated = False
        self.events: list[ProgressEvent] = []

    def subscribe(self, callback: ProgressCallback) -> None:
        self._subscribers.append(callback)

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def floor(self) -> float:
        return self._floor

    def rebase(self) -> None:
        """Map subsequent 0-100 progress onto the remaining [floor, 100] band."""
        self._base = self._floor

    def publish(
        self,
        stage: str,
        message: str,
        progress: float,
        mode: ProofMode,
        terminal: bool = False,
    ) -> ProgressEvent:
        if self._terminated:
            raise RuntimeError(
                f"Proof {self.proof_id}: event '{stage}' published after terminal event"
            )
        clamped = min(100.0, max(0.0, progress))
        scaled = self._base + (100.0 - self._base) * clamped / 100.0
        value = max(self._floor, scaled)
        self._floor = value

        event = ProgressEvent(
            proof_id=self.proof_id,
            stage=stage,
            message=message,
            progress=value,
            mode=mode,
            terminal=terminal,
        )
        self._terminated = terminal
        self.events.append(event)

        for callback in self._subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Progress subscriber %r failed on %s/%s", callback, self.proof_id, stage
                )
        return event


class WebhookSink:
    """Posts every event it receives to ``url`` as JSON.

    Use as an async context manager (or call start()/aclose()); events
    received before start() are queued and sent once the worker runs.
    """

    def __init__(
        self,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = WEBHOOK_TIMEOUT_S,
    ):
        self.url = url
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self.delivered = 0
        self.failed = 0

    def __call__(self, event: ProgressEvent) -> None:
        self._queue.put_nowait(event)

    async def start(self) -> None:
        if self._worker is not None:
            return
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        self._worker = asyncio.create_task(self._run())

    async def aclose(self) -> None:
        """Deliver everything queued, then stop the worker."""
        if self._worker is not None:
            self._queue.put_nowait(None)
            await self._worker
            self._worker = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> WebhookSink:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            try:
                await self._post_with_retry(event)
                self.delivered += 1
            except httpx.HTTPError as exc:
                self.failed += 1
                logger.warning(
                    "Webhook delivery of %s/%s to %s failed: %s",
                    event.proof_id,
                    event.stage,
                    self.url,
                    exc,
                )

    async def _post_with_retry(self, event: ProgressEvent) -> None:
        """POST one event, retrying transient (5xx / transport) errors."""
        assert self._client is not None
        for attempt in range(1 + MAX_RETRIES):
            try:
                response = await self._client.post(self.url, json=event.to_dict())
                response.raise_for_status()
                return
            except (httpx.HTTPStatusError, httpx.TransportError) as exc:
                transient = (
                    isinstance(exc, httpx.TransportError)
                    or exc.response.status_code >= 500
                )
                if not transient or attempt >= MAX_RETRIES:
                    raise
                delay = RETRY_BASE_DELAY_S * (2**attempt)
                logger.info(
                    "Webhook error for %s (attempt %d/%d), retrying in %.1fs",
                    event.stage,
                    attempt + 1,
                    1 + MAX_RETRIES,
                    delay,
                )
                await asyncio.sleep(delay)
