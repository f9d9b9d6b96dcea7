"""NFS Export Manager — FastAPI backend entry point."""

import asyncio
import logging
import shutil

from fastapi import Cookie, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from exceptions import ExportError
from models import LoginRequest
from services.cmd import ValidationError
from services import nfsd
from middleware.auth import login, logout, get_current_user
from routes import exports, system
from db import cleanup_sessions, close_db

logger = logging.getLogger(__name__)

app = FastAPI(
    title="NFS Export Manager",
    version="0.1.0",
    description="Managed /etc/exports blocks for virtual machine shared folders",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Exception handlers ---


@app.exception_handler(ExportError)
async def export_error_handler(request: Request, exc: ExportError) -> JSONResponse:
    """Map export exceptions to HTTP responses naming the failed command."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": str(exc)},
    )


# --- Lifecycle ---


async def session_cleanup_task() -> None:
    while True:
        await asyncio.sleep(3600)
        try:
            removed = await cleanup_sessions()
            logger.debug("Removed %d expired session(s)", removed)
        except Exception:
            logger.exception("Session cleanup failed")


@app.on_event("startup")
async def startup() -> None:
    """Report whether nfsd is available; export edits still work without it."""
    if await nfsd.is_available():
        logger.info("nfsd found: %s", config.NFSD_BIN)
    else:
        logger.critical(
            "nfsd not found (%s). Export blocks can be written but nfsd restarts will fail.",
            config.NFSD_BIN,
        )

    app.state.cleanup_task = asyncio.create_task(session_cleanup_task())


@app.on_event("shutdown")
async def shutdown() -> None:
    task = getattr(app.state, "cleanup_task", None)
    if task is not None:
        task.cancel()
    await close_db()


# --- Auth routes ---


@app.post("/api/auth/login")
async def auth_login(body: LoginRequest, response: Response):
    return await login(body.username, body.password, response)


@app.post("/api/auth/logout")
async def auth_logout(response: Response, nfs_session: str | None = Cookie(None)):
    return await logout(response, nfs_session)


@app.get("/api/auth/me")
async def auth_me(user: dict = Depends(get_current_user)):
    return user


# --- Mount routers ---

app.include_router(exports.router, prefix="/api/exports", tags=["exports"])
app.include_router(system.router, prefix="/api/system", tags=["system"])


# --- Health check (unauthenticated) ---


@app.get("/api/health")
async def health() -> dict:
    """Health check — cheap PATH lookup, no subprocess."""
    nfsd_available = shutil.which(config.NFSD_BIN) is not None or shutil.which("nfsd") is not None
    return {
        "status": "ok" if nfsd_available else "degraded",
        "nfsd": nfsd_available,
        "exports_file": config.EXPORTS_FILE.exists(),
    }
