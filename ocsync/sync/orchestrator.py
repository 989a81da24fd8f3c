# ocsync/sync/orchestrator.py
# =======================================================
# Client-side driver: issue one step, wait, decide the next.
# Never more than one step in flight.
#   - success            -> advance to the returned cursor
#   - failure response   -> halt and surface the message (no retry)
#   - transport failure  -> retry the *same* cursor after a delay
# =======================================================
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ocsync.exceptions import StepFailure, SyncError, TransportFailure
from ocsync.sync.protocol import (
    StepState,
    SyncCursor,
    failure_response,
    success_response,
)
from ocsync.sync.step import run_sync_step

logger = logging.getLogger("uvicorn.error")

StepTransport = Callable[[SyncCursor], Awaitable[Dict[str, Any]]]


@dataclass
class RunOutcome:
    completed: bool
    cursor: SyncCursor
    steps: int
    retries: int
    message: str = ""
    cancelled: bool = False


def next_cursor(response: Dict[str, Any]) -> Optional[SyncCursor]:
    """
    Decide where to go after a step response. None means the run is done.
    Failure responses raise StepFailure.
    """
    data = (response or {}).get("data") or {}
    if not (response or {}).get("success"):
        raise StepFailure(data.get("message") or "Step failed", details={"error": data.get("error")})
    if data.get("has_more_variations"):
        return SyncCursor(int(data.get("offset", 0)), int(data.get("variation_offset", 0)))
    if data.get("has_more_products"):
        return SyncCursor(int(data.get("offset", 0)), 0)
    return None


# ---- Transports ----

class LocalStepTransport:
    """Runs the step in-process; used by server-side background runs."""

    def __init__(self, reader, catalog, *, chunk_size: int, image_base_url: str | None = None):
        self.reader = reader
        self.catalog = catalog
        self.chunk_size = chunk_size
        self.image_base_url = image_base_url

    async def __call__(self, cursor: SyncCursor) -> Dict[str, Any]:
        try:
            result = await run_sync_step(
                cursor,
                reader=self.reader,
                catalog=self.catalog,
                chunk_size=self.chunk_size,
                image_base_url=self.image_base_url,
            )
        except SyncError as e:
            return failure_response(**e.to_dict())
        if result.state is StepState.ERROR:
            return failure_response(result.message, StepFailure.code)
        return success_response(result)


class HttpStepTransport:
    """POSTs the cursor to a remote /api/sync/step."""

    def __init__(
        self,
        api_url: str,
        *,
        auth: tuple[str, str] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        # no client-side timeout by default: a step may legitimately run long
        self._client = httpx.AsyncClient(
            base_url=(api_url or "").rstrip("/"),
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpStepTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def __call__(self, cursor: SyncCursor) -> Dict[str, Any]:
        payload = {"offset": cursor.offset, "variation_offset": cursor.variation_offset}
        try:
            resp = await self._client.post("/api/sync/step", json=payload)
        except httpx.TransportError as e:
            raise TransportFailure(f"{e.__class__.__name__}: {e}") from e

        if resp.status_code >= 500:
            raise TransportFailure(f"HTTP {resp.status_code}")
        if resp.status_code >= 400:
            return failure_response(f"HTTP {resp.status_code}: {resp.text[:200]}", "http_error")
        try:
            body = resp.json()
        except ValueError as e:
            raise TransportFailure("Malformed step response") from e
        if not isinstance(body, dict):
            raise TransportFailure("Malformed step response")
        return body


# ---- Driver ----

class SyncOrchestrator:
    def __init__(
        self,
        transport: StepTransport,
        *,
        step_delay: float = 0.3,
        retry_delay: float = 5.0,
        max_retries: int | None = None,
        on_log: Callable[[str], None] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.transport = transport
        self.step_delay = step_delay
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self.on_log = on_log
        self.sleep = sleep
        self.cursor = SyncCursor()
        self.steps = 0
        self.retries = 0

    def _log(self, line: str) -> None:
        logger.info("[RUN] %s", line)
        if self.on_log:
            self.on_log(line)

    def _outcome(self, completed: bool, message: str, cancelled: bool = False) -> RunOutcome:
        return RunOutcome(
            completed=completed,
            cursor=self.cursor,
            steps=self.steps,
            retries=self.retries,
            message=message,
            cancelled=cancelled,
        )

    async def run(self, start_offset: int = 0, stop_event: asyncio.Event | None = None) -> RunOutcome:
        self.cursor = SyncCursor(max(0, int(start_offset)), 0)
        failures_in_a_row = 0

        while True:
            if stop_event is not None and stop_event.is_set():
                self._log("Cancelled")
                return self._outcome(False, "Cancelled", cancelled=True)

            cur = self.cursor
            self._log(f"Product {cur.offset + 1} - var offset {cur.variation_offset}")
            try:
                response = await self.transport(cur)
            except TransportFailure as e:
                failures_in_a_row += 1
                self.retries += 1
                if self.max_retries is not None and failures_in_a_row > self.max_retries:
                    msg = f"Transport error ({e.message}); giving up after {self.max_retries} retries"
                    self._log(msg)
                    return self._outcome(False, msg)
                self._log(f"Transport error ({e.message}) - retrying...")
                await self.sleep(self.retry_delay)
                continue

            failures_in_a_row = 0
            self.steps += 1
            try:
                nxt = next_cursor(response)
            except StepFailure as e:
                self._log(f"Error: {e.message}")
                return self._outcome(False, e.message)

            self._log(str((response.get("data") or {}).get("message", "")))
            if nxt is None:
                self._log("✅ All done")
                return self._outcome(True, "All done")

            self.cursor = nxt
            await self.sleep(self.step_delay)
