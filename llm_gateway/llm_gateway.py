from __future__ import annotations  # LLM request gateway module

import logging
import os
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, TypeVar

import httpx

from config import LlmRoute


logger = logging.getLogger(__name__)  # Module logger setup


class HttpClient(Protocol):  # Minimal HTTP client protocol
    def post(self, url: str, *, json: Dict[str, Any], headers: Dict[str, str], timeout: float) -> "HttpResponse": ...


class HttpResponse(Protocol):  # Minimal HTTP response protocol
    @property
    def status_code(self) -> int: ...

    def json(self) -> Any: ...

    @property
    def text(self) -> str: ...


class LlmGatewayError(RuntimeError):  # Base gateway error
    pass


class LlmStatusError(LlmGatewayError):  # Upstream answered with an error status
    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"LLM returned status {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class LlmTransportError(LlmGatewayError):  # Connection, DNS or timeout failure
    pass


class LlmEmptyResponseError(LlmGatewayError):  # Body missing or without text
    pass


class RetriesExhaustedError(LlmGatewayError):  # Every attempt failed
    def __init__(self, label: str, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


T = TypeVar("T")


def generate_text(prompt: str, *, cfg: LlmRoute, client: Optional[HttpClient] = None) -> str:
    """Send one prompt to the configured route and return the raw reply text."""

    url = f"{cfg.base_url}{cfg.endpoint}"
    payload = _build_payload(prompt, cfg)
    headers = _build_headers(cfg)
    logger.info(
        "LLM request send route=%s model=%s prompt_chars=%d",
        cfg.name,
        cfg.model,
        len(prompt),
    )
    try:
        response, close_cb = _post(url, payload, headers, cfg.timeout_s, client)
    except LlmGatewayError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error("LLM transport failure route=%s: %s", cfg.name, exc)
        raise LlmTransportError(f"LLM connection failed: {exc}") from exc
    try:
        if response.status_code >= 400:
            body = _safe_text(response)
            logger.error("LLM error status route=%s status=%s", cfg.name, response.status_code)
            raise LlmStatusError(response.status_code, body)
        try:
            data = response.json()
        except Exception as exc:  # noqa: BLE001
            logger.error("Invalid JSON payload from LLM: %s", exc)
            raise LlmEmptyResponseError("LLM payload was not JSON") from exc
    finally:
        _close_safely(close_cb)
    text = extract_text(data, cfg.provider)
    logger.info("LLM request done route=%s chars=%d", cfg.name, len(text))
    return text


def with_retries(
    operation: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_s: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "llm",
) -> T:
    """Run ``operation`` up to ``attempts`` times with a fixed pause in between.

    Any exception counts as a failed attempt. After the last one a
    ``RetriesExhaustedError`` carrying the final error is raised.
    """

    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            logger.warning("%s attempt %d/%d failed: %s", label, attempt, attempts, exc)
            if attempt < attempts and backoff_s > 0:
                sleep(backoff_s)
            continue
        if attempt > 1:
            logger.info("%s succeeded on attempt %d/%d", label, attempt, attempts)
        return result
    raise RetriesExhaustedError(label, attempts, last_error)


def extract_text(data: Any, provider: str) -> str:  # Extract reply text from a provider payload
    text = ""
    if isinstance(data, dict):
        if provider == "openai":
            text = _openai_text(data)
        else:
            text = _gemini_text(data)
    if not text or not text.strip():
        raise LlmEmptyResponseError("LLM response missing content")
    return text.strip()


def strip_code_fences(content: str) -> str:  # Remove common markdown fences from LLM output
    text = content.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        if lines:
            lines = lines[1:]
            while lines and lines[0].strip() == "":
                lines = lines[1:]
            while lines and lines[-1].strip() == "":
                lines = lines[:-1]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            text = "\n".join(lines).strip()
    return text.replace("```json", "").replace("```", "").strip()


def _build_payload(prompt: str, cfg: LlmRoute) -> Dict[str, Any]:
    if cfg.provider == "openai":
        payload: Dict[str, Any] = {
            "model": cfg.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        payload.update(cfg.generation)
        return payload
    payload = {"contents": [{"parts": [{"text": prompt}]}]}
    if cfg.generation:
        payload["generationConfig"] = dict(cfg.generation)
    return payload


def _build_headers(cfg: LlmRoute) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    api_key = cfg.api_key
    if not api_key and cfg.api_key_env:
        api_key = os.getenv(cfg.api_key_env)
    if api_key:
        if cfg.provider == "openai":
            headers["Authorization"] = f"Bearer {api_key}"
        else:
            headers["x-goog-api-key"] = api_key
    headers.update(cfg.extra_headers)
    return headers


def _post(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float, client: Optional[HttpClient]) -> Tuple[HttpResponse, Optional[Callable[[], None]]]:  # Dispatch HTTP request
    if client is not None:
        return client.post(url, json=payload, headers=headers, timeout=timeout), None
    http_client = httpx.Client(timeout=timeout)
    try:
        response = http_client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        http_client.close()
        raise LlmTransportError(f"LLM connection failed: {exc}") from exc
    return response, http_client.close


def _close_safely(close_cb: Optional[Callable[[], None]]) -> None:  # Close HTTP client callback when provided
    if close_cb is not None:
        close_cb()


def _safe_text(response: HttpResponse) -> str:
    try:
        body = response.text
    except Exception:  # noqa: BLE001
        return ""
    return body[:300]


def _openai_text(data: Dict[str, Any]) -> str:
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str):
            return content
    return ""


def _gemini_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        return ""
    content = candidate.get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts")
    if isinstance(parts, list) and parts and isinstance(parts[0], dict):
        text = parts[0].get("text")
        if isinstance(text, str):
            return text
    if isinstance(content.get("text"), str):
        return content["text"]
    return _find_text(content)


def _find_text(node: Any) -> str:  # Depth-first search for the first "text" string
    if isinstance(node, dict):
        value = node.get("text")
        if isinstance(value, str) and value:
            return value
        for child in node.values():
            found = _find_text(child)
            if found:
                return found
    elif isinstance(node, list):
        for child in node:
            found = _find_text(child)
            if found:
                return found
    return ""
