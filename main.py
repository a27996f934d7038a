import os
import re
import uvicorn
import time
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from assay.api.analysis import router as analysis_router
from assay.core.config import CORS_ORIGINS, LOG_LEVEL
from assay.llm.router import PROVIDER_CONFIGS
from assay.utils.logging_config import analysis_id_var, setup_logging

setup_logging(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger("main")

app = FastAPI(title="Assay - GitHub Issue Analyzer")

_STATIC_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "assay", "static")

# ---------------------------------------------------------------------------
# Request logging
# ---------------------------------------------------------------------------
_ANALYSIS_PATH = re.compile(r"^/api/analysis/(?P<analysis_id>[^/]+)")


def analysis_id_from_path(path: str) -> Optional[str]:
    """Job id from an /api/analysis/{id}/... path, or None."""
    match = _ANALYSIS_PATH.match(path)
    return match.group("analysis_id") if match else None


def _is_noise(path: str) -> bool:
    # UI assets and the 2s status poll would drown the job logs at INFO
    return not path.startswith("/api/") or path.endswith("/status")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        token = analysis_id_var.set(analysis_id_from_path(path) or "-")
        start = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.log(
                logging.DEBUG if _is_noise(path) else logging.INFO,
                "%s %s -> %d (%.1fms)", request.method, path, response.status_code, elapsed_ms,
            )
            return response
        except Exception:
            logger.exception("%s %s failed", request.method, path)
            raise
        finally:
            analysis_id_var.reset(token)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/health")
async def health_check():
    return {"status": "ok"}

@app.get("/api/providers")
async def list_providers():
    """Provider choices for the submission form."""
    return {
        "providers": [
            {"value": c.name, "label": c.label, "model": c.model, "free": c.free_tier}
            for c in PROVIDER_CONFIGS.values()
        ]
    }

app.include_router(analysis_router)

# Static UI last so API routes take precedence
app.mount("/", StaticFiles(directory=_STATIC_DIR, html=True), name="ui")

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
