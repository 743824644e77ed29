# deepguard/services/prompt.py
from dataclasses import dataclass
from typing import Any, Dict, List

from deepguard.core.errors import EmptyFrameSetError
from deepguard.detectors.frames import FrameSet

# Bump on any wording change: the text steers the model's output shape.
PROMPT_VERSION = "1"

_INSTRUCTIONS = """You are an expert deepfake detection AI. Analyze these {count} video frames carefully for signs of manipulation or deepfake artifacts. Look for:

1. Facial inconsistencies (unnatural expressions, morphing, inconsistent lighting on face)
2. Temporal anomalies (sudden changes between frames, flickering artifacts)
3. Audio-visual sync issues (if detectable from frame sequences)
4. Compression artifacts that suggest manipulation
5. Unnatural skin texture, eye movements, or blinking patterns
6. Edge artifacts around faces or objects
7. Inconsistent lighting or shadows across frames
8. Warping or distortion around face boundaries

Provide a JSON response with:
{{
  "isAuthentic": boolean (true if video appears genuine, false if deepfake detected),
  "confidence": integer (0-100, how confident you are in your assessment),
  "issues": string[] (list of specific issues found, empty array if authentic),
  "details": string (brief explanation of your analysis)
}}

Be thorough and accurate in your analysis."""


def render_prompt(frame_count: int) -> str:
    return _INSTRUCTIONS.format(count=frame_count)


@dataclass(frozen=True)
class AnalysisRequest:
    prompt: str
    frames: FrameSet
    prompt_version: str = PROMPT_VERSION

    def content(self) -> List[Dict[str, Any]]:
        """
        Chat-completion content parts: the instructions, then every frame
        in capture order.
        """
        parts: List[Dict[str, Any]] = [{"type": "text", "text": self.prompt}]
        parts.extend(
            {"type": "image_url", "image_url": {"url": frame.data_url}}
            for frame in self.frames
        )
        return parts


def build_request(frames: FrameSet) -> AnalysisRequest:
    if len(frames) == 0:
        raise EmptyFrameSetError("No frames provided")
    return AnalysisRequest(prompt=render_prompt(len(frames)), frames=frames)
