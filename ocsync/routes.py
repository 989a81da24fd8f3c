#=======================================================================================
# ocsync/routes.py
# FastAPI routes for the OpenCart → WooCommerce chunked sync.
#
# ✅ POST /api/sync/step is the whole protocol: cursor in, result + next cursor out.
#    The server keeps no progress between steps.
# ✅ /api/sync/run starts a server-side run (same orchestrator, in-process steps).
#
# IMPORTANT: In main_app.py, include with NO extra prefix to avoid /api/api duplication.
#=======================================================================================

import asyncio
import json
import secrets
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from ocsync.config import settings
from ocsync.exceptions import ConfigurationMissing, StepFailure
from ocsync.opencart.catalog_reader import OpenCartReader
from ocsync.sync.orchestrator import LocalStepTransport, SyncOrchestrator
from ocsync.sync.protocol import (
    StepRequest,
    StepState,
    failure_response,
    success_response,
)
from ocsync.sync.step import run_sync_step
from ocsync.woocommerce import WooCatalog

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api", tags=["Sync API"])

# ---------------------------
# HTTP Basic for admin routes
# ---------------------------
security = HTTPBasic()

def verify_admin(credentials: HTTPBasicCredentials = Depends(security)):
    ok_user = secrets.compare_digest(credentials.username or "", settings.ADMIN_USER or "")
    ok_pass = secrets.compare_digest(credentials.password or "", settings.ADMIN_PASS or "")
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )

# ---------------------------
# Dependencies
# ---------------------------
def get_reader() -> OpenCartReader:
    """OpenCart reader from settings; ConfigurationMissing when credentials are blank."""
    missing = settings.missing_source_settings()
    if missing:
        logger.warning("[SYNC] OpenCart DB credentials missing: %s", ", ".join(missing))
        raise ConfigurationMissing(missing)
    return OpenCartReader.from_settings()

def get_catalog_factory() -> Callable[[], Any]:
    """Returns a callable producing an async-context-managed Woo catalog."""
    return WooCatalog.from_settings

@asynccontextmanager
async def _open_catalog(factory: Callable[[], Any]) -> AsyncIterator[Any]:
    catalog = factory()
    async with catalog:
        yield catalog

# ---------------------------
# Helpers
# ---------------------------
async def _safe_json(req: Request) -> Dict[str, Any]:
    """Best-effort JSON body parsing with fallbacks."""
    try:
        body = await req.json()
        return body if isinstance(body, dict) else {}
    except Exception:
        try:
            raw = (await req.body()).decode("utf-8", "ignore")
            body = json.loads(raw) if raw.strip() else {}
            return body if isinstance(body, dict) else {}
        except Exception:
            return {}

def _now_ts() -> int:
    return int(time.time())

# ---------------------------
# Background run store (in-memory)
# ---------------------------
_JOBS: Dict[str, Dict[str, Any]] = {}
_STOPS: Dict[str, asyncio.Event] = {}
_JOBS_LOCK = asyncio.Lock()
_JOBS_TTL_SECONDS = 60 * 60  # keep finished jobs 1 hour
_JOB_LOG_LINES = 500

async def _cleanup_jobs_now():
    """Remove finished jobs older than TTL."""
    cutoff = _now_ts() - _JOBS_TTL_SECONDS
    async with _JOBS_LOCK:
        to_del = [jid for jid, rec in _JOBS.items()
                  if rec.get("finished") and rec.get("finished") < cutoff]
        for jid in to_del:
            _JOBS.pop(jid, None)
            _STOPS.pop(jid, None)

def _job_view(rec: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: v for k, v in rec.items() if k != "orchestrator"}
    orch = rec.get("orchestrator")
    if orch is not None:
        out["cursor"] = {"offset": orch.cursor.offset, "variation_offset": orch.cursor.variation_offset}
        out["steps"] = orch.steps
    return out

async def _run_job(job_id: str, *, reader: OpenCartReader, catalog_factory: Callable[[], Any],
                   start_offset: int):
    """Background runner: drives the orchestrator with in-process steps."""
    logger.info(f"[JOB][RUN] Job {job_id} starting at product #{start_offset + 1}")
    rec = _JOBS[job_id]
    log_lines = rec["log"]

    def _on_log(line: str) -> None:
        log_lines.append(line)
        if len(log_lines) > _JOB_LOG_LINES:
            del log_lines[: len(log_lines) - _JOB_LOG_LINES]

    rec.update({"status": "running", "started": _now_ts()})
    try:
        async with _open_catalog(catalog_factory) as catalog:
            transport = LocalStepTransport(
                reader, catalog,
                chunk_size=settings.SYNC_VARIATION_CHUNK_SIZE,
                image_base_url=settings.OC_IMAGE_BASE_URL,
            )
            orch = SyncOrchestrator(
                transport,
                step_delay=settings.SYNC_STEP_DELAY,
                retry_delay=settings.SYNC_RETRY_DELAY,
                max_retries=settings.SYNC_MAX_RETRIES,
                on_log=_on_log,
            )
            rec["orchestrator"] = orch
            outcome = await orch.run(start_offset, stop_event=_STOPS[job_id])

        if outcome.completed:
            final = "done"
        elif outcome.cancelled:
            final = "cancelled"
        else:
            final = "halted"
        rec.update({
            "status": final,
            "finished": _now_ts(),
            "message": outcome.message,
            "retries": outcome.retries,
        })
        logger.info(f"[JOB][COMPLETE] Job {job_id} {final}: {outcome.message}")
    except Exception as e:
        rec.update({"status": "error", "finished": _now_ts(), "message": str(e)})
        logger.error(f"[JOB][ERROR] Job {job_id} failed: {e}")

    await _cleanup_jobs_now()

# ----------------------------------------------------------------------
# Routes
# ----------------------------------------------------------------------

@router.get("/sync/summary", dependencies=[Depends(verify_admin)])
async def api_sync_summary(reader: OpenCartReader = Depends(get_reader)):
    """How many OpenCart products declare options (the products a full run walks)."""
    await reader.ping()
    total = await reader.count_products_with_options()
    return JSONResponse(content={
        "success": True,
        "data": {
            "total_products": total,
            "chunk_size": settings.SYNC_VARIATION_CHUNK_SIZE,
        },
    })

@router.post("/sync/step", dependencies=[Depends(verify_admin)])
async def api_sync_step(
    request: Request,
    reader: OpenCartReader = Depends(get_reader),
    catalog_factory: Callable[[], Any] = Depends(get_catalog_factory),
):
    """
    Process one variation chunk or product.

    Body: { "offset": int, "variation_offset" | "variationOffset": int }

    Failures come back as HTTP 200 with success=false so a client can tell
    them apart from transport failures (which it retries).
    """
    req = StepRequest.model_validate(await _safe_json(request))

    async with _open_catalog(catalog_factory) as catalog:
        result = await run_sync_step(
            req.cursor,
            reader=reader,
            catalog=catalog,
            chunk_size=settings.SYNC_VARIATION_CHUNK_SIZE,
            image_base_url=settings.OC_IMAGE_BASE_URL,
        )

    if result.state is StepState.ERROR:
        logger.error("[SYNC] OC Sync Error: %s", result.message)
        return JSONResponse(content=failure_response(result.message, StepFailure.code))
    return JSONResponse(content=success_response(result))

@router.post("/sync/run", dependencies=[Depends(verify_admin)])
async def api_sync_run(
    request: Request,
    reader: OpenCartReader = Depends(get_reader),
    catalog_factory: Callable[[], Any] = Depends(get_catalog_factory),
):
    """
    Start a server-side run. Body: { "start_product": 1-based int (default 1) }.
    Returns { job_id, status } immediately (202); poll GET /api/sync/status/{job_id}.
    """
    payload = await _safe_json(request)
    try:
        start_product = max(1, int(payload.get("start_product", 1)))
    except (TypeError, ValueError):
        start_product = 1

    job_id = uuid.uuid4().hex
    logger.info(f"[JOB][REGISTER] Registering new job: {job_id} (start_product={start_product})")
    async with _JOBS_LOCK:
        _JOBS[job_id] = {
            "id": job_id,
            "status": "queued",
            "created": _now_ts(),
            "started": None,
            "finished": None,
            "start_product": start_product,
            "log": [],
        }
        _STOPS[job_id] = asyncio.Event()

    asyncio.create_task(_run_job(
        job_id, reader=reader, catalog_factory=catalog_factory, start_offset=start_product - 1,
    ))
    return JSONResponse(status_code=202, content={"job_id": job_id, "status": "queued"})

@router.get("/sync/status/{job_id}", dependencies=[Depends(verify_admin)])
async def api_sync_status(job_id: str):
    rec = _JOBS.get(job_id)
    if not rec:
        raise HTTPException(status_code=404, detail="Job not found")
    return JSONResponse(content=_job_view(rec))

@router.post("/sync/cancel/{job_id}", dependencies=[Depends(verify_admin)])
async def api_sync_cancel(job_id: str):
    """Stop issuing further steps; the step in flight finishes normally."""
    rec = _JOBS.get(job_id)
    stop = _STOPS.get(job_id)
    if not rec or stop is None:
        raise HTTPException(status_code=404, detail="Job not found")
    stop.set()
    logger.info(f"[JOB][CANCEL] Job {job_id} cancel requested")
    return JSONResponse(content={"job_id": job_id, "status": rec.get("status"), "cancel_requested": True})
