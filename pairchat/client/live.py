import asyncio
import json
import logging
from urllib.parse import urlencode

import websockets

from pairchat.client.controller import ConversationViewController

logger = logging.getLogger(__name__)


def socket_url(base_url: str, token: str) -> str:
    base = base_url.rstrip("/")
    if base.startswith("http"):
        base = "ws" + base[len("http"):]
    return f"{base}/api/messages/ws?{urlencode({'token': token})}"


async def listen(url: str, controller: ConversationViewController, resync: bool = False) -> None:
    """Feed every event of one live connection to the controller until it closes.

    With ``resync`` the controller refetches its state once connected; events
    arriving meanwhile wait in the socket buffer.
    """
    async with websockets.connect(url) as ws:
        if resync:
            await controller.refresh()
        async for raw in ws:
            try:
                envelope = json.loads(raw)
            except ValueError:
                logger.warning(f"Ignoring malformed event: {raw!r}")
                continue
            await controller.handle_envelope(envelope)


async def run_forever(url: str, controller: ConversationViewController, retry_delay: float = 2.0) -> None:
    """Keep a live connection open.

    The server does not replay events, so anything missed while disconnected
    is recovered by a full refresh after each reconnect.
    """
    resync = False
    while True:
        try:
            await listen(url, controller, resync=resync)
        except (OSError, websockets.ConnectionClosed) as e:
            logger.warning(f"Live connection lost: {e}; retrying in {retry_delay}s")
        resync = True
        await asyncio.sleep(retry_delay)
