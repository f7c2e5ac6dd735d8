"""
Camera snapshots for the server-side capture endpoint.

The camera is ready once it delivers a non-blank frame. Devices that never
do within the warm-up window fall back to the last frame read, which is the
fixed-delay behaviour.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import cv2
import numpy as np

from faceverify.errors import CaptureDeviceFailure

logger = logging.getLogger(__name__)

# Mean pixel value under which a frame counts as "sensor still dark".
BLANK_FRAME_MEAN = 8.0
JPEG_QUALITY = 90
FAILED_READ_PAUSE = 0.01


def _is_blank(frame: np.ndarray) -> bool:
    return float(frame.mean()) < BLANK_FRAME_MEAN


def encode_jpeg(frame: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, JPEG_QUALITY])
    if not ok:
        raise CaptureDeviceFailure("could not encode camera frame")
    return buffer.tobytes()


def grab_frame(
    video_capture,
    warmup_seconds: float,
    clock=time.monotonic,
    sleep=time.sleep,
) -> np.ndarray:
    """Read frames until one is non-blank or the warm-up window runs out."""
    deadline = clock() + warmup_seconds
    last_frame: Optional[np.ndarray] = None

    while True:
        ret, frame = video_capture.read()
        if ret and frame is not None:
            last_frame = frame
            if not _is_blank(frame):
                return frame
        else:
            sleep(FAILED_READ_PAUSE)
        if clock() >= deadline:
            break

    if last_frame is None:
        raise CaptureDeviceFailure("camera returned no frames")
    logger.warning("[capture] no ready frame within %.1fs, using last frame", warmup_seconds)
    return last_frame


def capture_snapshot_sync(
    device_index: int = 0,
    warmup_seconds: float = 1.0,
    width: int = 640,
    height: int = 480,
) -> bytes:
    video_capture = cv2.VideoCapture(device_index)
    try:
        if not video_capture.isOpened():
            raise CaptureDeviceFailure(f"could not open camera {device_index}")
        video_capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        video_capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

        frame = grab_frame(video_capture, warmup_seconds)
        if frame.shape[1] != width or frame.shape[0] != height:
            frame = cv2.resize(frame, (width, height))
        return encode_jpeg(frame)
    finally:
        video_capture.release()


async def capture_snapshot(
    device_index: int = 0,
    warmup_seconds: float = 1.0,
    width: int = 640,
    height: int = 480,
    timeout: float | None = None,
) -> bytes:
    """Grab one JPEG frame from the camera without blocking the event loop."""
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(capture_snapshot_sync, device_index, warmup_seconds, width, height),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        raise CaptureDeviceFailure(f"camera did not respond within {timeout}s") from exc
    except cv2.error as exc:
        raise CaptureDeviceFailure(f"camera error: {exc}") from exc
