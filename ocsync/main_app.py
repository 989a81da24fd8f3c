#=================================================================
# ocsync/main_app.py
# FastAPI application entry-point.
#=================================================================

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from ocsync.routes import router as api_router
from ocsync.db import dispose_engine
from ocsync.config import settings
from ocsync.exceptions import ConfigurationMissing, SyncError
from ocsync.logging_filters import install_log_filters
from ocsync.sync.protocol import failure_response

# --- FastAPI instance ---
app = FastAPI(
    title="OpenCart WooCommerce Variations Sync",
    description="Chunked, resumable sync of OpenCart products and option variations into WooCommerce.",
)

# --- Logging setup (console, INFO level) ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s | %(message)s"
)
logger = logging.getLogger("uvicorn.error")
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
install_log_filters()

# --- CORS ---
origins = settings.CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------- Include routers ----------------
app.include_router(api_router)           # /api/*

# --- Root endpoint ---
@app.get("/")
async def home():
    return {"status": "running", "service": "OpenCart WooCommerce Variations Sync"}

# --- Sync errors: answered as failure responses, never as transport errors ---
@app.exception_handler(SyncError)
async def sync_error_handler(request: Request, exc: SyncError):
    if isinstance(exc, ConfigurationMissing):
        logger.warning("OC2WC requires OpenCart DB credentials (%s)", ", ".join(exc.missing))
    else:
        logger.error("Sync error (%s): %s", exc.code, exc.message)
    body = failure_response(**exc.to_dict())
    if exc.details:
        body["data"]["details"] = exc.details
    return JSONResponse(status_code=200, content=body)

# --- Global error handler (keeps full stack trace in logs) ---
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": f"Sync failed: {str(exc)}"},
    )

@app.on_event("shutdown")
async def _shutdown():
    await dispose_engine()

#if __name__ == "__main__":
#    import uvicorn
#
#    uvicorn.run(app, host="0.0.0.0", port=8000)
