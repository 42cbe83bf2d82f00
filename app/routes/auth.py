# Scan-to-login routes: QR ticket issuance, phone login (claim)
# and desktop polling.

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from app.core.config import settings
from app.db import JsonFileBackend, MemoryBackend, TicketStore
from app.services.ids import IdGenerationError, SnowflakeGenerator
from app.services.limiter import limiter
from app.services.logger import events
from app.services.qr_service import QRService
from app.services.ticket_service import TicketService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

store = TicketStore(
    JsonFileBackend(settings.TICKET_STORE_PATH) if settings.TICKET_STORE_PATH else MemoryBackend()
)
service = TicketService(
    store,
    ttl_seconds=settings.TICKET_TTL_SECONDS,
    id_generator=SnowflakeGenerator(settings.SNOWFLAKE_NODE_ID).next_id,
    frontend_origin=settings.FRONTEND_ORIGIN,
)


def get_ticket_service() -> TicketService:
    return service


class CheckReq(BaseModel):
    uuid: str = Field(min_length=1)

class CheckResp(BaseModel):
    success: bool
    user_id: str
    message: str

class LoginReq(BaseModel):
    uuid: str = Field(min_length=1)
    user_id: str = Field(min_length=1)

class LoginResp(BaseModel):
    success: bool
    message: str


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


@router.get("/getqrcode", response_class=Response, responses={200: {"content": {"image/png": {}}}})
def get_qr_code(request: Request, tickets: TicketService = Depends(get_ticket_service)):
    # Desktop asks for a fresh ticket rendered as a QR code
    started = time.perf_counter()
    client_ip = request.client.host if request.client else ""

    try:
        issued = tickets.issue(client_ip)
    except IdGenerationError as e:
        logger.error(f"Ticket issue failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate ticket id")
    except ValueError as e:
        # Id already present in the ticket file, written by another process
        logger.error(f"Ticket issue failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to issue ticket")

    img = QRService.create_qr_png(issued.url)
    events.record("issue", issued.ticket_id, "success", _elapsed_ms(started))

    return Response(
        content=img,
        media_type="image/png",
        headers={"uuid": issued.ticket_id, "Access-Control-Expose-Headers": "uuid"},
    )


@router.post("/checkuuid", response_model=CheckResp, dependencies=[Depends(limiter.check)])
def check_uuid(req: CheckReq, tickets: TicketService = Depends(get_ticket_service)):
    # Desktop polls until the phone has logged in
    started = time.perf_counter()
    res = tickets.poll(req.uuid)
    events.record("poll", req.uuid, res.message.value, _elapsed_ms(started))
    return CheckResp(success=res.success, user_id=res.user_id, message=res.message.value)


@router.post("/login", response_model=LoginResp, dependencies=[Depends(limiter.check)])
def login(req: LoginReq, tickets: TicketService = Depends(get_ticket_service)):
    # Phone binds the scanned ticket to its user
    started = time.perf_counter()
    res = tickets.claim(req.uuid, req.user_id)
    events.record("claim", req.uuid, res.message.value, _elapsed_ms(started))
    return LoginResp(success=res.success, message=res.message.value)
