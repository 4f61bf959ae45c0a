from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import logging

from pairchat.security import TOKEN_COOKIE_NAME, decode_user_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Live event subscription. Authenticates with the session cookie or a ``token`` query parameter."""
    await websocket.accept()
    token = websocket.cookies.get(TOKEN_COOKIE_NAME) or websocket.query_params.get("token")
    user_id = decode_user_id(token) if token else None
    if user_id is None:
        await websocket.close(code=1008)
        return

    registry = websocket.app.state.registry
    await registry.connect(user_id, websocket)

    try:
        while True:
            # Keep connection alive; clients do not send events
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception(f"WebSocket error for user {user_id}")
    finally:
        await registry.disconnect(user_id, websocket)
