from __future__ import annotations  # Re-export llm_gateway public API

from .llm_gateway import (
    HttpClient,
    HttpResponse,
    LlmEmptyResponseError,
    LlmGatewayError,
    LlmStatusError,
    LlmTransportError,
    RetriesExhaustedError,
    extract_text,
    generate_text,
    strip_code_fences,
    with_retries,
)

__all__ = [
    "HttpClient",
    "HttpResponse",
    "LlmEmptyResponseError",
    "LlmGatewayError",
    "LlmStatusError",
    "LlmTransportError",
    "RetriesExhaustedError",
    "extract_text",
    "generate_text",
    "strip_code_fences",
    "with_retries",
]
