"""
Owner-side link-up endpoints:
  GET  /linkups/incoming                 — pending requests for my events
  WS   /linkups/incoming/ws?token=…      — the same list, live
  POST /linkups/{request_id}/decision    — accept or decline
"""
import logging
from functools import partial
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from linkup import linkups
from linkup.auth import Principal, decode_token, get_principal
from linkup.clients.redis_client import incoming_channel
from linkup.database import get_db
from linkup.schemas import DecisionRequest, IncomingRequest, LinkUpRequestResponse
from linkup.watch import Watch

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/incoming", response_model=list[IncomingRequest])
async def incoming(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return await linkups.incoming_requests(db, principal.user_id)


@router.post("/{request_id}/decision", response_model=LinkUpRequestResponse)
async def decide(
    request_id: str,
    body: DecisionRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return await linkups.decide(db, principal, request_id, body.decision)


@router.websocket("/incoming/ws")
async def incoming_socket(websocket: WebSocket, token: Optional[str] = Query(default=None)):
    # Browsers can't set headers on a WebSocket handshake, so the token rides in the query
    try:
        principal = decode_token(token or "")
    except JWTError:
        await websocket.close(code=4001)
        return

    await websocket.accept()
    watch = Watch(
        incoming_channel(principal.user_id),
        partial(linkups.incoming_requests, owner_user_id=principal.user_id),
        kind="incoming",
    )
    try:
        async for snapshot in watch.snapshots():
            await websocket.send_json(
                {
                    "requests": [r.model_dump(mode="json") for r in snapshot.items],
                    "empty": snapshot.empty,
                    "error": snapshot.error,
                }
            )
    except WebSocketDisconnect:
        logger.debug("Incoming-requests socket for %s disconnected", principal.user_id)
    finally:
        await watch.close()
