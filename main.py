import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from container import build_services
from db import SessionLocal, init_db
from errors import AppError

# Routers
from routers.admin import router as admin_router
from routers.attempts import router as attempts_router
from routers.health import router as health_router
from routers.quizzes import router as quizzes_router
from routers.results import router as results_router
from sweeper import run_periodically

logger = logging.getLogger("quiz-attempts")
logging.basicConfig(level=config.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.AUTO_CREATE_TABLES:
        init_db()

    task = None
    if config.SWEEP_INTERVAL_SECONDS > 0:
        task = asyncio.create_task(
            run_periodically(app.state.services.sweeper, config.SWEEP_INTERVAL_SECONDS)
        )
    yield
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


app = FastAPI(title="Quiz Attempts API", lifespan=lifespan)
app.state.services = build_services(SessionLocal)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*", "x-api-key", "x-admin-token", "x-user-id"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.to_dict()})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": {"kind": "internal", "message": "Internal server error"}},
    )


@app.get("/")
def health_root():
    return {"ok": True}


app.include_router(attempts_router)  # /attempts/...
app.include_router(results_router)  # /results/...
app.include_router(quizzes_router)  # /quizzes/...
app.include_router(admin_router)  # /admin/...
app.include_router(health_router)  # /health/...
