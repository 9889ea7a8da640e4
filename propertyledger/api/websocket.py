"""WebSocket endpoint for real-time receipt queue synchronization."""

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from propertyledger.database import SessionLocal
from propertyledger.models.user import User
from propertyledger.services.auth import decode_access_token
from propertyledger.services.realtime import RealtimeService, account_channel

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/ws", tags=["websocket"])

PING_INTERVAL_SECONDS = 30


@router.websocket("/receipts")
async def websocket_receipt_sync(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """WebSocket endpoint for an account's receipt events.

    Authentication via token query parameter (WebSocket doesn't support headers).
    Every connection is subscribed to its account's channel only, so events
    never cross tenants.
    """
    # Manual DB session for WebSocket (can't use Depends normally)
    db = SessionLocal()
    realtime_service = RealtimeService()
    user_id: int | None = None

    try:
        # Authenticate user
        payload = decode_access_token(token)
        if not payload:
            await websocket.close(code=4001, reason="Invalid token")
            return

        user_id_str = payload.get("sub")
        if not user_id_str:
            await websocket.close(code=4001, reason="Invalid token")
            return

        user_id = int(user_id_str)
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            await websocket.close(code=4001, reason="User not found")
            return

        account_id = user.account_id
        # The session is only needed for authentication
        db.close()

        await websocket.accept()
        logger.info(f"WebSocket connected: user={user_id}, account={account_id}")

        async def handle_messages() -> None:
            """Receive messages from Redis and forward to WebSocket."""
            async for message in realtime_service.subscribe(account_channel(account_id)):
                try:
                    await websocket.send_json(message)
                except WebSocketDisconnect:
                    break
                except Exception as e:
                    logger.error(f"Error sending WebSocket message: {e}")
                    break

        async def handle_ping() -> None:
            """Send periodic pings to keep connection alive."""
            while True:
                try:
                    await asyncio.sleep(PING_INTERVAL_SECONDS)
                    await websocket.send_json({"type": "ping"})
                except Exception:
                    break

        async def handle_client() -> None:
            """Handle incoming messages from client (pong responses)."""
            while True:
                try:
                    data = await websocket.receive_json()
                    if data.get("type") == "pong":
                        continue  # Keepalive acknowledgment
                except WebSocketDisconnect:
                    break
                except Exception:
                    break

        tasks = [
            asyncio.ensure_future(handle_messages()),
            asyncio.ensure_future(handle_ping()),
            asyncio.ensure_future(handle_client()),
        ]
        # Any handler finishing means the connection is done
        _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: user={user_id}")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
    finally:
        db.close()
        await realtime_service.cleanup()
        logger.info(f"WebSocket closed: user={user_id}")
