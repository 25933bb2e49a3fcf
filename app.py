# app.py
# SpecFlow Architect: local context + relay server (FastAPI)
#
# Endpoints:
#   GET  /health            (adapter availability, context status, routes)
#   POST /sync              (rebuild codebase_context.txt from the project tree)
#   POST /save              (write one file inside the project root; 403 on escape)
#   POST /analyze           (context + request -> generative model -> answer)
#   GET  /context/summary   (persisted context document info)
#   GET  /audit/ledger      (tail of the audit log)
#
# The /api/* prefixed aliases of sync/save/analyze keep the frontend's
# existing URLs working.
# Note: keep the endpoint list above in sync with any new routes.

from __future__ import annotations

import time
import traceback
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from specflow import __version__
from specflow.apply_agent import ApplyAgent
from specflow.audit import AuditLog
from specflow.config import AppConfig, build_config
from specflow.context_sync import ContextSynchronizer
from specflow.errors import SpecflowError, ValidationError
from specflow.relay import AnalysisRelay
from specflow.service import ProviderService

AUDIT_LEDGER_LIMIT = 200

# ----------------------------
# Models
# ----------------------------

class SaveIn(BaseModel):
    fileName: Optional[str] = None
    fullCode: Optional[str] = None

class AnalyzeIn(BaseModel):
    message: Optional[str] = None

# ----------------------------
# Runtime
# ----------------------------

@dataclass
class Runtime:
    config: AppConfig
    synchronizer: ContextSynchronizer
    apply_agent: ApplyAgent
    relay: AnalysisRelay
    service: ProviderService
    audit: AuditLog


def build_runtime(config: AppConfig, service: Optional[ProviderService] = None) -> Runtime:
    service = service or ProviderService(config)
    synchronizer = ContextSynchronizer(config.context)
    return Runtime(
        config=config,
        synchronizer=synchronizer,
        apply_agent=ApplyAgent(config.context.project_root),
        relay=AnalysisRelay(config.analysis, synchronizer, service),
        service=service,
        audit=AuditLog(config.audit_log_path),
    )


def _error_response(exc: SpecflowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


def _unexpected_response(rt: Runtime, event: str, exc: Exception) -> JSONResponse:
    detail = traceback.format_exc(limit=4)
    rt.audit.event(event, {"error": str(exc), "trace": detail})
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(exc), "code": "InternalError"},
    )


def create_app(config: AppConfig, service: Optional[ProviderService] = None) -> FastAPI:
    rt = build_runtime(config, service)

    app = FastAPI(title="SpecFlow Architect Server", version=__version__)
    app.state.runtime = rt
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.server.cors_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next: Callable):
        limit = config.server.max_body_bytes
        length = request.headers.get("content-length")
        if limit and length and length.isdigit() and int(length) > limit:
            return JSONResponse(
                status_code=413,
                content={
                    "success": False,
                    "error": f"Request body exceeds {limit} bytes",
                    "code": "PayloadTooLarge",
                },
            )
        return await call_next(request)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = first.get("msg", "Invalid request body")
        err = ValidationError(f"{where}: {message}" if where else message)
        rt.audit.event("request_error", {"path": request.url.path, "error": err.message})
        return _error_response(err)

    # ----------------------------
    # Routes
    # ----------------------------

    def _context_status() -> dict:
        try:
            return rt.synchronizer.summary()
        except SpecflowError as exc:
            return {"exists": True, "path": str(rt.synchronizer.context_path), **exc.to_envelope()}

    @app.get("/health")
    def health():
        return {
            "ok": True,
            "serverName": "SpecFlow",
            "serverTime": time.time(),
            "version": __version__,
            "responseMode": config.analysis.response_mode,
            "projectRoot": str(config.context.project_root),
            "adapters": rt.service.status(),
            "context": _context_status(),
            "endpoints": {
                "health": "/health",
                "sync": "/sync",
                "save": "/save",
                "analyze": "/analyze",
                "context_summary": "/context/summary",
                "audit_ledger": "/audit/ledger",
            },
        }

    @app.post("/sync")
    @app.post("/api/sync")
    def sync():
        try:
            result = rt.synchronizer.sync()
        except SpecflowError as exc:
            rt.audit.event("sync_error", {"error": exc.message, "code": exc.code})
            return _error_response(exc)
        except Exception as exc:
            return _unexpected_response(rt, "sync_error", exc)

        rt.audit.event(
            "sync",
            {
                "path": str(result.path),
                "fileCount": result.file_count,
                "bytes": result.bytes,
                "skipped": result.skipped,
            },
        )
        return {
            "success": True,
            "path": str(result.path),
            "fileCount": result.file_count,
            "bytes": result.bytes,
            "skipped": result.skipped,
        }

    @app.post("/save")
    @app.post("/api/save")
    def save(inp: SaveIn):
        try:
            if not inp.fileName:
                raise ValidationError("fileName is required")
            if inp.fullCode is None:
                raise ValidationError("fullCode is required")
            result = rt.apply_agent.write(inp.fileName, inp.fullCode)
        except SpecflowError as exc:
            event = "save_denied" if exc.status_code == 403 else "save_error"
            rt.audit.event(event, {"fileName": inp.fileName, "error": exc.message, "code": exc.code})
            return _error_response(exc)
        except Exception as exc:
            return _unexpected_response(rt, "save_error", exc)

        rt.audit.event(
            "save",
            {"path": result.relative_path, "bytes": result.bytes, "created": result.created},
        )
        return {
            "success": True,
            "path": result.relative_path,
            "bytes": result.bytes,
            "created": result.created,
        }

    @app.post("/analyze")
    @app.post("/api/analyze")
    def analyze(inp: AnalyzeIn):
        started = time.time()
        try:
            result = rt.relay.analyze(inp.message)
        except SpecflowError as exc:
            rt.audit.event("analyze_error", {"error": exc.message, "code": exc.code})
            return _error_response(exc)
        except Exception as exc:
            return _unexpected_response(rt, "analyze_error", exc)

        rt.audit.event(
            "analyze",
            {
                "adapter": result.adapter,
                "mode": result.mode,
                "durationMs": int((time.time() - started) * 1000),
            },
        )
        return result.to_payload()

    @app.get("/context/summary")
    def context_summary():
        try:
            return {"success": True, **rt.synchronizer.summary()}
        except SpecflowError as exc:
            return _error_response(exc)

    @app.get("/audit/ledger")
    def audit_ledger(limit: int = Query(AUDIT_LEDGER_LIMIT, ge=1, le=1000)):
        return {"success": True, "events": rt.audit.tail(limit)}

    return app


def print_banner(config: AppConfig, service: ProviderService) -> None:
    try:
        adapter = service.resolve_adapter(config.analysis.adapter)
        connected = adapter.is_available()
        label = f"{adapter.name} ({adapter.type})"
    except (RuntimeError, ValueError):
        connected = False
        label = "no adapter"
    print("------------------------------------")
    print(f"BRAIN CONNECTED: {label}" if connected else f"BRAIN DISCONNECTED: {label}")
    print("------------------------------------")


if __name__ == "__main__":
    import argparse
    import sys

    parser = argparse.ArgumentParser(description="Run the SpecFlow architect server.")
    parser.add_argument("--config", default=None, help="Path to config.json")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    args = parser.parse_args()

    try:
        import uvicorn
    except ImportError:
        print("Missing dependency: uvicorn. Install with `python -m pip install uvicorn`.", file=sys.stderr)
        raise

    app_config = build_config(args.config)
    if args.host:
        app_config.server.host = args.host
    if args.port:
        app_config.server.port = args.port
    provider_service = ProviderService(app_config)
    print_banner(app_config, provider_service)
    print(f"SpecFlow server live at http://{app_config.server.host}:{app_config.server.port}")
    uvicorn.run(
        create_app(app_config, provider_service),
        host=app_config.server.host,
        port=app_config.server.port,
    )
