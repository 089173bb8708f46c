"""WebSocket stream pushing connection status snapshots"""

import asyncio

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from provider_hub.supervisor.status import ConnectionStatus
from provider_hub.supervisor.supervisor import ConnectionSupervisor

logger = structlog.get_logger()


async def status_stream(websocket: WebSocket, supervisor: ConnectionSupervisor) -> None:
    """
    Send the current status, then every subsequent snapshot.

    Snapshots are queued by the supervisor callback and forwarded by a
    separate task so a slow client never blocks the supervisor. The
    connection stays open until the client disconnects.
    """
    await websocket.accept()
    queue: "asyncio.Queue[ConnectionStatus]" = asyncio.Queue(maxsize=100)

    def on_status(status: ConnectionStatus) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(status)

    async def forward() -> None:
        while True:
            status = await queue.get()
            await websocket.send_json({"type": "status", "data": status.to_dict()})

    unsubscribe = supervisor.subscribe(on_status)
    await websocket.send_json({"type": "status", "data": supervisor.status.to_dict()})
    forward_task = asyncio.create_task(forward())
    logger.info("status_stream_opened")

    try:
        while True:
            # client messages are ignored; receiving detects the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("status_stream_disconnected")
    finally:
        unsubscribe()
        forward_task.cancel()
        try:
            await forward_task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning("status_stream_forward_error", error=str(e))
