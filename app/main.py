# FastAPI application entry point that initialises
# the app, the ticket sweeper and registers API routes.


import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.routes.auth import router as auth_router, service
from app.services.sweeper import TicketSweeper

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = None
    if settings.SWEEP_INTERVAL_SECONDS > 0:
        sweeper = TicketSweeper(service, settings.SWEEP_INTERVAL_SECONDS)
        sweeper.start()
    yield
    if sweeper is not None:
        sweeper.stop()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["uuid"],
    allow_credentials=True,
)
app.include_router(auth_router)


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected malformed request to {request.url.path}")
    return JSONResponse(status_code=400, content={"success": False, "message": "Invalid request"})


@app.get("/health")
def health():
    return {"ok": True}
