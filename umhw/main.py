import re
import time
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

from umhw.core.config import settings
from umhw.core.logging import setup_logging, request_id_ctx
from umhw.core.errors import GrantError, from_validation_errors
from umhw.core.db import init_models, SessionLocal
from umhw.api.router import api_router
from umhw.modules.events.outbox import run_outbox_relay
from umhw.platform.provider_registry import registry

setup_logging()
logger = logging.getLogger(__name__)

# bearer tokens in public paths must never reach the logs
_SECRET_PATH = re.compile(r"(/qr/public/|/share/(?!manage(?:/|$)))[^/]+")

def redact_path(path: str) -> str:
    return _SECRET_PATH.sub(r"\1***", path)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    app.state.outbox_task = asyncio.create_task(run_outbox_relay(SessionLocal, registry.event_bus()))
    try:
        yield
    finally:
        task = app.state.outbox_task
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await registry.event_bus().close()

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = (time.time() - start_time) * 1000
    formatted_process_time = f"{process_time:.2f}ms"

    logger.info(
        f"Request: {request.method} {redact_path(request.url.path)} - Response: {response.status_code} - Time: {formatted_process_time}"
    )
    # public links must not leak through the Referer header
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    return response

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id", "-")
    request_id_ctx.set(rid)
    response = await call_next(request)
    return response

@app.exception_handler(GrantError)
async def grant_error_handler(request: Request, exc: GrantError):
    logger.info(f"{exc.code} for {request.method} {redact_path(request.url.path)}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return await grant_error_handler(request, from_validation_errors(exc.errors()))

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception for request {request.method} {redact_path(request.url.path)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "An internal server error occurred."},
    )

app.include_router(api_router, prefix=settings.API_PREFIX)
