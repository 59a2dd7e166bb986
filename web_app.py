from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Optional

# Ensure analyzer and live-source logging is visible when running under uvicorn
logging.getLogger("pushupsense.reps").setLevel(logging.INFO)
logging.getLogger("pushupsense.sources").setLevel(logging.INFO)

from dotenv import load_dotenv
from fastapi import FastAPI, WebSocket, WebSocketDisconnect

import cv2
import numpy as np

from pushupsense.config import AnalyzerConfig
from pushupsense.events import event_to_dict
from pushupsense.live import STOP_TIMEOUT_SEC, close_when_idle
from pushupsense.pose import MediaPipePoseEstimator
from pushupsense.reps import PushUpAnalyzer
from pushupsense.sources import LiveFrameSource
from pushupsense.summary import summarize_session

# PUSHUPSENSE_* thresholds from .env, as the CLI loads them
load_dotenv()
load_dotenv(Path(__file__).resolve().parent / ".env")

logger = logging.getLogger("pushupsense.web")

app = FastAPI(title="PushUpSense")
# Swappable so tests and deployments can supply another PoseEstimator.
app.state.estimator_factory = MediaPipePoseEstimator


def decode_image(image_data: object) -> Optional[np.ndarray]:
    """Decode a base64 (optionally data-URL) JPEG/PNG into a BGR frame."""
    if not isinstance(image_data, str) or not image_data:
        return None
    if image_data.startswith("data:"):
        image_data = image_data.split(",", 1)[1]
    try:
        img_bytes = base64.b64decode(image_data)
    except (binascii.Error, ValueError):
        return None
    np_arr = np.frombuffer(img_bytes, np.uint8)
    if np_arr.size == 0:
        return None
    return cv2.imdecode(np_arr, cv2.IMREAD_COLOR)


def parse_timestamp(raw: object) -> Optional[float]:
    """Client-supplied `ts` in ms; None when missing or not numeric."""
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


async def _forward_events(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        item = await queue.get()
        if item is None:
            return
        await websocket.send_text(json.dumps(item))


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.websocket("/ws/live")
async def live_socket(websocket: WebSocket, target: int = 0) -> None:
    """
    Live push-up session over a WebSocket.

    Client -> server: {"image": "<base64 or data URL>", "ts": <ms>} per frame,
    then {"type": "stop"}. Server -> client: every analyzer event as JSON,
    then a "summary" message on stop. Disconnecting cancels the session.
    """
    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    config = AnalyzerConfig.from_env().with_overrides(target_count=target or None)
    analyzer = PushUpAnalyzer(config)
    analyzer.subscribe(lambda ev: loop.call_soon_threadsafe(queue.put_nowait, event_to_dict(ev)))
    estimator = websocket.app.state.estimator_factory()
    source = LiveFrameSource(analyzer, estimator, config)
    source.start()
    sender = asyncio.create_task(_forward_events(websocket, queue))
    logger.info("live: session started (target=%s)", config.target_count)

    result = None
    completed = False
    try:
        while True:
            msg = await websocket.receive_text()
            try:
                payload = json.loads(msg)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue
            if payload.get("type") == "stop":
                result = await loop.run_in_executor(None, source.stop, STOP_TIMEOUT_SEC)
                completed = True
                break
            frame_bgr = decode_image(payload.get("image"))
            if frame_bgr is None:
                continue
            source.offer(frame_bgr, parse_timestamp(payload.get("ts")))
    except WebSocketDisconnect:
        logger.info("live: client disconnected (count=%s dropped=%s)", analyzer.count, source.dropped)
    finally:
        if not completed:
            source.cancel()
            sender.cancel()
        await loop.run_in_executor(None, close_when_idle, source, estimator)
    if not completed:
        return

    # queued after processing_complete, which stop() already emitted
    if result is not None:
        loop.call_soon_threadsafe(queue.put_nowait, {"type": "summary", **summarize_session(result, "live-web")})
    loop.call_soon_threadsafe(queue.put_nowait, None)
    await sender
    await websocket.close()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_app:app", host="0.0.0.0", port=8000, reload=True)
