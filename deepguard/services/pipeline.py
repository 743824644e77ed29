# deepguard/services/pipeline.py
import asyncio
from typing import Callable, Optional

from loguru import logger

from deepguard.core.cancellation import CancelToken
from deepguard.core.errors import AnalysisCancelledError, DeepGuardError
from deepguard.core.schemas import AnalysisOutcome, AnalysisState, ErrorDescriptor, Verdict
from deepguard.detectors.frames import FrameSampler, FrameSet, VideoSource
from deepguard.detectors.gateway import InferenceGateway
from deepguard.services.interpreter import interpret
from deepguard.services.prompt import build_request

GENERIC_FAILURE = "Failed to analyze video"
INVALID_MEDIA = "Please select a valid video file"
BUSY = "An analysis is already in progress"

ProgressListener = Callable[[AnalysisState], None]

_IN_FLIGHT = frozenset(
    {AnalysisState.EXTRACTING, AnalysisState.REQUESTING, AnalysisState.INTERPRETING}
)


class PipelineOrchestrator:
    """
    Runs one submission at a time through
    idle -> extracting -> requesting -> interpreting -> done.

    Any stage failure lands in `errored` with a readable message; the
    orchestrator accepts a new submission right after. A call made while
    another is in flight is rejected with code "busy" and leaves the running
    analysis untouched.
    """

    def __init__(self, sampler: FrameSampler, gateway: InferenceGateway):
        self.sampler = sampler
        self.gateway = gateway
        self.state = AnalysisState.IDLE
        self.verdict: Optional[Verdict] = None
        self.error: Optional[ErrorDescriptor] = None

    @property
    def in_flight(self) -> bool:
        return self.state in _IN_FLIGHT

    async def analyze(
        self,
        video: VideoSource,
        on_progress: Optional[ProgressListener] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> AnalysisOutcome:
        if self.in_flight:
            return _busy()

        if not video.is_video:
            logger.warning(f"Rejected non-video upload ({video.content_type})")
            return AnalysisOutcome(error=ErrorDescriptor(code="invalid_media", message=INVALID_MEDIA))

        return await self._run(video, None, on_progress, cancel_token)

    async def analyze_frames(
        self,
        frames: FrameSet,
        on_progress: Optional[ProgressListener] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> AnalysisOutcome:
        """Same pipeline for frames the client already sampled; skips extraction."""
        if self.in_flight:
            return _busy()
        return await self._run(None, frames, on_progress, cancel_token)

    async def _run(
        self,
        video: Optional[VideoSource],
        frames: Optional[FrameSet],
        on_progress: Optional[ProgressListener],
        cancel_token: Optional[CancelToken],
    ) -> AnalysisOutcome:
        self._enter(AnalysisState.IDLE, on_progress)

        try:
            if frames is None:
                self._enter(AnalysisState.EXTRACTING, on_progress)
                frames = await self.sampler.sample(video, cancel_token=cancel_token)
                logger.info(f"Extracted {len(frames)} frames")

            self._enter(AnalysisState.REQUESTING, on_progress)
            request = build_request(frames)
            raw_text = await self.gateway.infer(request, cancel_token=cancel_token)

            self._enter(AnalysisState.INTERPRETING, on_progress)
            verdict = interpret(raw_text)
        except DeepGuardError as e:
            logger.error(f"Analysis failed in {self.state.value}: [{e.error_code}] {e}")
            return self._fail(e.error_code, str(e), on_progress)
        except asyncio.CancelledError:
            self._fail(AnalysisCancelledError.error_code, str(AnalysisCancelledError()), on_progress)
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in analysis pipeline: {e}")
            return self._fail("internal", str(e), on_progress)

        self.verdict = verdict
        self._enter(AnalysisState.DONE, on_progress)
        logger.info(f"Final result: {verdict.model_dump()}")
        return AnalysisOutcome(verdict=verdict)

    def _enter(self, state: AnalysisState, on_progress: Optional[ProgressListener]) -> None:
        if state is AnalysisState.IDLE:
            self.verdict = None
            self.error = None
        self.state = state
        logger.debug(f"Pipeline state -> {state.value}")
        if on_progress is not None:
            on_progress(state)

    def _fail(
        self,
        code: str,
        message: str,
        on_progress: Optional[ProgressListener],
    ) -> AnalysisOutcome:
        self.error = ErrorDescriptor(code=code, message=message or GENERIC_FAILURE)
        self.verdict = None
        self._enter(AnalysisState.ERRORED, on_progress)
        return AnalysisOutcome(error=self.error)


def _busy() -> AnalysisOutcome:
    return AnalysisOutcome(error=ErrorDescriptor(code="busy", message=BUSY))
