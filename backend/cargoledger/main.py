import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cargoledger.api.router import api_router
from cargoledger.config import settings
from cargoledger.database import engine
from cargoledger.errors import NotFoundError, TransientStoreError, ValidationError
from cargoledger.middleware.logging import RequestLoggingMiddleware

# Root logging; access lines go through cargoledger.access
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting CargoLedger backend (env=%s)", settings.environment)
    yield
    await engine.dispose()
    logger.info("Shutting down CargoLedger backend")


app = FastAPI(
    title="CargoLedger - Shipment Entity Resolution",
    description="Document, party and shipment registries with workflow state and reconciliation for ocean freight mail",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(TransientStoreError)
async def transient_error_handler(request: Request, exc: TransientStoreError) -> JSONResponse:
    logger.warning("Transient store failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)}, headers={"Retry-After": "1"})


app.include_router(api_router, prefix="/api")
