# deepguard/core/heuristics.py
from deepguard.core.schemas import Verdict

FALLBACK_CONFIDENCE = 70
UNSTRUCTURED_ISSUE = "Analysis completed but structured data unavailable"


def classify_text(text: str) -> bool:
    """
    Keyword guess at authenticity for replies that carry no usable JSON.

    Checked in order: "authentic", "genuine", then the absence of
    "deepfake". Case-insensitive substring search.
    """
    lowered = text.lower()
    return "authentic" in lowered or "genuine" in lowered or "deepfake" not in lowered


def fallback_verdict(raw_text: str) -> Verdict:
    """
    Degraded verdict built from prose. Confidence is a fixed placeholder.
    """
    is_authentic = classify_text(raw_text)
    return Verdict(
        isAuthentic=is_authentic,
        confidence=FALLBACK_CONFIDENCE,
        issues=[] if is_authentic else [UNSTRUCTURED_ISSUE],
        details=raw_text,
    )
