import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from contractorai.core.config import settings, validate_config
from contractorai.core.logging import configure_logging
from contractorai.core.middleware.request_id import RequestIdMiddleware
from contractorai.core.validation import validate_env
from contractorai.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from contractorai.api import assistant, email, health, subscriptions, webhooks

configure_logging(settings.ENV)
validate_env()
validate_config(strict=settings.CONFIG_STRICT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("contractorai")
    logger.info("Starting ContractorAI backend...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        logging.getLogger("contractorai").info("Stopping ContractorAI backend...")


app = FastAPI(title="ContractorAI - Backend", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(subscriptions.router)
app.include_router(webhooks.router)
app.include_router(assistant.router)
app.include_router(email.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("contractorai.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
