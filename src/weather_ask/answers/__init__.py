"""Citations and deterministic fallback answers."""

from .citations import Citation, build_citations, latest_per_date
from .fallback import NO_DATA_ANSWER, build_fallback_answer

__all__ = [
    "NO_DATA_ANSWER",
    "Citation",
    "build_citations",
    "build_fallback_answer",
    "latest_per_date",
]
