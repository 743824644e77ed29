import asyncio
import time
from typing import Callable, List, Optional

import cv2
import numpy as np
import pytest

from deepguard.core.config import Settings
from deepguard.core.errors import MediaLoadError
from deepguard.detectors.frames import FrameSampler, VideoSource

VERDICT_JSON = '{"isAuthentic":true,"confidence":95,"issues":[],"details":"ok"}'


class FakeDecoder:
    """In-memory stand-in for OpenCVDecoder that records every seek."""

    def __init__(
        self,
        duration: float = 10.0,
        width: int = 32,
        height: int = 24,
        fail_at: Optional[int] = None,
        delay: float = 0.0,
        on_read: Optional[Callable[[float], None]] = None,
    ):
        self.duration = duration
        self.width = width
        self.height = height
        self.fail_at = fail_at
        self.delay = delay
        self.on_read = on_read
        self.reads: List[float] = []
        self.opened_paths: List[str] = []
        self.closed = False

    def __call__(self, path: str) -> "FakeDecoder":
        self.opened_paths.append(path)
        return self

    def read_at(self, timestamp: float) -> np.ndarray:
        if self.delay:
            time.sleep(self.delay)
        if self.fail_at is not None and len(self.reads) == self.fail_at:
            raise MediaLoadError(f"Could not decode frame at {timestamp:.2f}s")
        self.reads.append(timestamp)
        if self.on_read is not None:
            self.on_read(timestamp)
        shade = (len(self.reads) * 40) % 256
        return np.full((self.height, self.width, 3), shade, dtype=np.uint8)

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeDecoder":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class StubGateway:
    """Gateway double: records requests and replies with fixed text or an error."""

    def __init__(self, reply: str = VERDICT_JSON, error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.requests = []
        self.gate: Optional[asyncio.Event] = None

    async def infer(self, request, cancel_token=None) -> str:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def settings():
    return Settings(AI_GATEWAY_API_KEY="test-key", _env_file=None)


@pytest.fixture
def fake_decoder():
    return FakeDecoder()


@pytest.fixture
def fake_sampler(fake_decoder):
    return FrameSampler(sample_count=5, decoder_factory=fake_decoder)


@pytest.fixture
def video():
    return VideoSource(path="/tmp/clip.mp4", content_type="video/mp4")


@pytest.fixture
def avi_video(tmp_path):
    """Three seconds of 64x48 MJPG at 10 fps, brightening every frame."""
    path = str(tmp_path / "clip.avi")
    writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
    for i in range(30):
        writer.write(np.full((48, 64, 3), i * 8, dtype=np.uint8))
    writer.release()
    return VideoSource(path=path, content_type="video/x-msvideo")
