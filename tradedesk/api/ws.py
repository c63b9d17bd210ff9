"""WebSocket push of trade and balance updates to the owning user."""

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from sqlmodel import Session

from tradedesk.api.deps import user_from_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def trade_updates(ws: WebSocket, token: str = Query(...)):
    runtime = ws.app.state.runtime

    # Short-lived session: the socket may stay open for hours
    with Session(runtime.engine) as session:
        user = user_from_token(token, session)
        user_id = user.id if user is not None else None
    if user_id is None:
        await ws.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    sub = runtime.broker.subscribe(user_id)

    async def _drain_incoming():
        # Clients never send anything meaningful; this only detects disconnects
        while True:
            await ws.receive_text()

    reader = None
    try:
        await ws.accept()
        reader = asyncio.create_task(_drain_incoming())
        while True:
            getter = asyncio.create_task(sub.get())
            done, _ = await asyncio.wait({getter, reader}, return_when=asyncio.FIRST_COMPLETED)
            if reader in done:
                getter.cancel()
                reader.result()  # re-raises WebSocketDisconnect
            await ws.send_json(getter.result())
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {user_id}")
    finally:
        if reader is not None:
            reader.cancel()
        sub.close()
