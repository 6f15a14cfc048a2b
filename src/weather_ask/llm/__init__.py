"""LLM client, prompts and JSON extraction."""

from .client import LLMClient
from .extraction import ExtractionResult, extract_json

__all__ = ["ExtractionResult", "LLMClient", "extract_json"]
