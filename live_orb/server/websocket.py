"""
WebSocket endpoint streaming session signals.

Protocol:
1. Client connects
2. Server sends: {"type": "snapshot", "signals": {...}}
3. Server sends: {"type": "signal", "name": "mood", "value": "sad", "signals": {...}}
   on every signal change, and {"type": "history", "entry": {...}} for
   every archived turn
4. Anything the client sends is ignored; the stream ends when it disconnects
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from live_orb.server.app import signals_payload

logger = logging.getLogger(__name__)

router = APIRouter()


async def _wait_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/signals")
async def signal_stream(websocket: WebSocket):
    await websocket.accept()

    manager = websocket.app.state.manager
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    # Signals may change on the audio thread; hop onto this loop
    def on_signal(name, old, new):
        loop.call_soon_threadsafe(queue.put_nowait, {"type": "signal", "name": name, "value": new})

    def on_entry(entry):
        loop.call_soon_threadsafe(queue.put_nowait, {"type": "history", "entry": entry.to_dict()})

    manager.signals.subscribe(on_signal)
    manager.history.subscribe(on_entry)
    disconnected = asyncio.create_task(_wait_disconnect(websocket))

    try:
        await websocket.send_json({"type": "snapshot", "signals": signals_payload(manager)})
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({getter, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if disconnected in done:
                getter.cancel()
                break

            message = getter.result()
            if message["type"] == "signal":
                message["signals"] = signals_payload(manager)
            await websocket.send_json(message)
    except WebSocketDisconnect:
        pass
    finally:
        disconnected.cancel()
        manager.signals.unsubscribe(on_signal)
        manager.history.unsubscribe(on_entry)
        logger.debug("Signal client disconnected")
