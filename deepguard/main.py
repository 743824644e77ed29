# deepguard/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from deepguard.api.v1.routes_scan import error_response, router as scan_router
from deepguard.core.config import get_settings
from deepguard.core.errors import DeepGuardError
from deepguard.core.logging import configure_logging
from deepguard.core.schemas import ErrorDescriptor
from deepguard.detectors.gateway import get_gateway


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    # Fail the boot, not the first request, when the credential is missing.
    gateway = get_gateway()
    logger.info(f"DeepGuard backend ready ({settings.ENV}, model {gateway.settings.AI_MODEL})")
    yield


app = FastAPI(
    title="DeepGuard Backend",
    version="0.1.0",
    description="FastAPI backend that samples video frames and asks a hosted multimodal model for an authenticity verdict.",
    lifespan=lifespan,
)

# CORS – the browser frontend calls us directly
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DeepGuardError)
async def deepguard_error_handler(request: Request, exc: DeepGuardError) -> JSONResponse:
    logger.error(f"Error in {request.url.path}: [{exc.error_code}] {exc}")
    return error_response(ErrorDescriptor(code=exc.error_code, message=str(exc)))


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "deepguard-backend", "version": "0.1.0"}


# Mount v1 API routes
app.include_router(scan_router, prefix="/api/v1")
