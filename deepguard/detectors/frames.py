# deepguard/detectors/frames.py

from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple
import asyncio
import base64
import io
import threading

from PIL import Image
from loguru import logger
import numpy as np
import cv2

from deepguard.core.cancellation import CancelToken
from deepguard.core.config import Settings
from deepguard.core.errors import MediaLoadError, SeekTimeoutError


# -----------------------------
# VALUE OBJECTS
# -----------------------------
@dataclass(frozen=True)
class VideoSource:
    """
    A video the caller owns (usually a spooled upload on disk).
    The sampler only borrows it while frames are being taken.
    """
    path: str
    content_type: str = "video/mp4"

    @property
    def is_video(self) -> bool:
        return (self.content_type or "").lower().startswith("video/")


@dataclass(frozen=True)
class Frame:
    timestamp: Optional[float]  # None when the client did not report one
    data_url: str


@dataclass(frozen=True)
class FrameSet:
    """Frames in capture order. The order is what the model reads as time."""
    frames: Tuple[Frame, ...] = ()

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[Frame]:
        return iter(self.frames)

    def __getitem__(self, index: int) -> Frame:
        return self.frames[index]

    @property
    def timestamps(self) -> List[Optional[float]]:
        return [f.timestamp for f in self.frames]

    @classmethod
    def from_data_urls(cls, data_urls: Sequence[str]) -> "FrameSet":
        """
        Wrap client-sampled frames. Every entry must decode to an image;
        a bad entry raises ValueError naming its index.
        """
        frames = []
        for index, data_url in enumerate(data_urls):
            try:
                decode_data_url(data_url)
            except Exception as e:
                raise ValueError(f"Frame {index} is not a valid image: {e}") from e
            frames.append(Frame(timestamp=None, data_url=data_url))
        return cls(tuple(frames))


# -----------------------------
# IMAGE CODEC
# -----------------------------
def decode_data_url(data_url: str) -> Image.Image:
    """
    Handles both full data URLs and raw base64 strings.
    """
    if "," in data_url:
        _, b64data = data_url.split(",", 1)
    else:
        b64data = data_url

    b64data = "".join(b64data.split())
    missing_padding = len(b64data) % 4
    if missing_padding:
        b64data += "=" * (4 - missing_padding)

    img_bytes = base64.b64decode(b64data)
    return Image.open(io.BytesIO(img_bytes)).convert("RGB")


def encode_jpeg_data_url(rgb: np.ndarray, quality: int = 80) -> str:
    """
    Encode an RGB array at its native size as a JPEG data URL.
    """
    buffer = io.BytesIO()
    Image.fromarray(rgb).save(buffer, format="JPEG", quality=quality)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"


# -----------------------------
# DECODER (OPENCV)
# -----------------------------
class OpenCVDecoder:
    """
    Seekable decoder over cv2.VideoCapture.

    The capture's playhead is shared state: callers must issue one
    read_at() at a time. Use as a context manager so the capture is
    released on every path. close() waits for a read still running on
    another thread, so the capture is never released under it.
    """

    def __init__(self, path: str):
        self._capture = cv2.VideoCapture(path)
        if not self._capture.isOpened():
            self._capture.release()
            raise MediaLoadError("Failed to load video", details={"path": path})

        fps = self._capture.get(cv2.CAP_PROP_FPS)
        frame_count = self._capture.get(cv2.CAP_PROP_FRAME_COUNT)
        if not fps or fps <= 0 or not frame_count or frame_count <= 0:
            self._capture.release()
            raise MediaLoadError(
                "Could not determine video duration",
                details={"path": path, "fps": fps, "frame_count": frame_count},
            )

        self.duration = float(frame_count) / float(fps)
        self.width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._lock = threading.Lock()
        self._released = False

    def read_at(self, timestamp: float) -> np.ndarray:
        with self._lock:
            if self._released:
                raise MediaLoadError(
                    "Video was already released",
                    details={"timestamp": timestamp},
                )
            return self._grab(timestamp)

    def _grab(self, timestamp: float) -> np.ndarray:
        self._capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0)
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise MediaLoadError(
                f"Could not decode frame at {timestamp:.2f}s",
                details={"timestamp": timestamp},
            )
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def close(self) -> None:
        with self._lock:
            if not self._released:
                self._capture.release()
                self._released = True

    def __enter__(self) -> "OpenCVDecoder":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


# -----------------------------
# SAMPLING
# -----------------------------
def sample_timestamps(duration: float, n: int) -> List[float]:
    """
    Interior points of n + 1 equal intervals. The first and last instants
    are never sampled.
    """
    if n < 1:
        raise ValueError(f"sample count must be >= 1, got {n}")
    if duration <= 0:
        raise ValueError(f"duration must be positive, got {duration}")
    interval = duration / (n + 1)
    return [interval * k for k in range(1, n + 1)]


class FrameSampler:
    def __init__(
        self,
        sample_count: int = 5,
        jpeg_quality: int = 80,
        seek_timeout: Optional[float] = 10.0,
        decoder_factory: Callable[[str], OpenCVDecoder] = OpenCVDecoder,
    ):
        self.sample_count = sample_count
        self.jpeg_quality = jpeg_quality
        self.seek_timeout = seek_timeout
        self._decoder_factory = decoder_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "FrameSampler":
        return cls(
            sample_count=settings.FRAME_SAMPLE_COUNT,
            jpeg_quality=settings.JPEG_QUALITY,
            seek_timeout=settings.SEEK_TIMEOUT_SECONDS,
        )

    async def sample(
        self,
        video: VideoSource,
        n: Optional[int] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> FrameSet:
        """
        Take n evenly spaced frames from the video, strictly one after another.

        Raises:
            MediaLoadError    the video cannot be opened, has no usable
                              duration, or a frame cannot be decoded.
            SeekTimeoutError  a seek did not finish within seek_timeout.
            AnalysisCancelledError  the token was cancelled between seeks.
        """
        n = self.sample_count if n is None else n
        if n < 1:
            raise ValueError(f"sample count must be >= 1, got {n}")

        _check(cancel_token)

        decoder = self._decoder_factory(video.path)
        try:
            timestamps = sample_timestamps(decoder.duration, n)
            logger.info(
                f"Sampling {n} frames from {decoder.width}x{decoder.height} video "
                f"({decoder.duration:.2f}s)"
            )

            frames: List[Frame] = []
            for ts in timestamps:
                _check(cancel_token)
                try:
                    rgb = await asyncio.wait_for(
                        asyncio.to_thread(decoder.read_at, ts),
                        timeout=self.seek_timeout,
                    )
                except asyncio.TimeoutError:
                    raise SeekTimeoutError(
                        f"Timed out seeking to {ts:.2f}s",
                        details={"timestamp": ts, "timeout": self.seek_timeout},
                    )
                _check(cancel_token)

                frames.append(
                    Frame(timestamp=ts, data_url=encode_jpeg_data_url(rgb, self.jpeg_quality))
                )
        finally:
            # A timed-out read may still hold the decoder; wait for it off the event loop.
            await asyncio.to_thread(decoder.close)

        return FrameSet(tuple(frames))


def _check(cancel_token: Optional[CancelToken]) -> None:
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()
