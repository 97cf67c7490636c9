"""LLM client with retry, failure classification and JSON extraction."""

from .client import LLMClient, LLMResult
from .failures import classify_failure
from .parsing import extract_json, find_balanced_span

__all__ = [
    "LLMClient",
    "LLMResult",
    "classify_failure",
    "extract_json",
    "find_balanced_span",
]
