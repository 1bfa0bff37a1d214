import time
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

from app.core.config import settings
from app.core.logging import setup_logging, request_id_ctx
from app.api.router import api_router
from app.core.db import init_models, dispose_engine
from app.core.redis import redis_manager
from app.platform.provider_registry import registry


setup_logging()
app = FastAPI(title=settings.APP_NAME)

logger = logging.getLogger(__name__)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id", "-")
    token = request_id_ctx.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    if rid != "-":
        response.headers["x-request-id"] = rid
    return response

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = (time.time() - start_time) * 1000
    formatted_process_time = f"{process_time:.2f}ms"

    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {formatted_process_time}"
    )

    return response

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "An internal server error occurred."},
    )


@app.on_event("startup")
async def on_startup():
    await init_models()
    if settings.EHR_CACHE_PROVIDER == "redis":
        await redis_manager.connect()
    ehr = registry.ehr_client()
    logger.info(f"{settings.APP_NAME} started (env={settings.ENV}, ehr={getattr(ehr, 'name', 'none')})")

@app.on_event("shutdown")
async def on_shutdown():
    await registry.close()
    await redis_manager.close()
    await dispose_engine()


app.include_router(api_router, prefix=settings.API_PREFIX)
