"""Websocket channel used to push notifications to connected clients.

Protocol (JSON text frames):
    client -> {"event": "register", "userId": 42, "token": "<access token>"}
    server -> {"event": "registered", "userId": 42}
    server -> {"event": "notification", "data": {...}}
    client -> {"event": "ping"}   server -> {"event": "pong"}

A connection is only mapped to an account after its access token verifies
and names that account. The mapping is removed when the connection closes.
"""

import json

from core.dependencies import get_token_service
from core.errors import Unauthorized
from core.logging import logger
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from services.presence import PresenceRegistry, get_presence
from services.tokens import TokenService

router = APIRouter(tags=["realtime"])


async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"event": "error", "message": message})


async def _authenticate(tokens: TokenService, message: dict) -> int:
    """Return the account id a register frame may claim.

    Raises:
        Unauthorized: If the token is missing, invalid, revoked, or issued
            to a different account than `userId`.
    """
    token = message.get("token")
    if not isinstance(token, str) or not token.strip():
        raise Unauthorized("token is required")
    claims = await tokens.verify(token.strip())

    claimed = message.get("userId")
    if claimed is not None:
        try:
            claimed = int(claimed)
        except (TypeError, ValueError):
            raise Unauthorized("userId is invalid")
        if claimed != claims.account_id:
            raise Unauthorized("Token does not match userId")
    return claims.account_id


@router.websocket("/ws")
async def realtime(
    websocket: WebSocket,
    presence: PresenceRegistry = Depends(get_presence),
    tokens: TokenService = Depends(get_token_service),
):
    await websocket.accept()
    logger.debug("Websocket connected client={}", websocket.client)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await _send_error(websocket, "Invalid JSON")
                continue

            event = message.get("event") if isinstance(message, dict) else None
            if event == "register":
                try:
                    account_id = await _authenticate(tokens, message)
                except Unauthorized as exc:
                    logger.warning(
                        "Rejected websocket register client={}: {}", websocket.client, exc.message
                    )
                    await _send_error(websocket, exc.message)
                    continue
                presence.register(account_id, websocket)
                await websocket.send_json({"event": "registered", "userId": account_id})
            elif event == "ping":
                await websocket.send_json({"event": "pong"})
            else:
                await _send_error(websocket, f"Unknown event: {event}")
    except WebSocketDisconnect:
        logger.debug("Websocket disconnected client={}", websocket.client)
    finally:
        presence.unregister(websocket)
