# src/hearth/llm/client.py

from __future__ import annotations

import logging
import threading
from typing import Any

import httpx
import openai
from openai import OpenAI

from ..errors import UpstreamAPIError
from .request import ChatRequest

logger = logging.getLogger(__name__)

VISION_TEMPERATURE = 0.7
VISION_MAX_TOKENS = 500


def _is_auth_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "AuthenticationError",
        "PermissionDeniedError",
        "UnauthorizedError",
    }


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"RateLimitError", "TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "APIConnectionError",
        "APITimeoutError",
        "Timeout",
        "ConnectTimeout",
        "ReadTimeout",
        "WriteTimeout",
    }


def _is_not_found_error(exc: Exception) -> bool:
    # OpenAI-compatible servers answer 404 for unknown models
    return exc.__class__.__name__ in {"NotFoundError"}


def _status_of(exc: Exception) -> int | None:
    code = getattr(exc, "status_code", None)
    return int(code) if isinstance(code, int) else None


def to_upstream_error(exc: Exception, *, model: str = "") -> UpstreamAPIError:
    """Map an SDK/transport exception to an UpstreamAPIError with a readable message."""
    status = _status_of(exc)
    if _is_auth_error(exc):
        return UpstreamAPIError(
            "Upstream authentication failed. Check the API key.", status_code=status
        )
    if _is_rate_limit_error(exc):
        return UpstreamAPIError("Upstream is rate-limited. Try again later.", status_code=status)
    if _is_connection_error(exc):
        return UpstreamAPIError("Upstream network/timeout error. Try again later.")
    if _is_not_found_error(exc):
        return UpstreamAPIError(f"Model not available: {model or '?'}", status_code=status)

    detail = str(exc).strip() or exc.__class__.__name__
    if status is not None:
        return UpstreamAPIError(f"Upstream request failed ({status}): {detail}", status_code=status)
    return UpstreamAPIError(f"Upstream request failed: {detail}")


def friendly_upstream_error_message(err: Exception) -> str:
    msg = str(err).strip() or "Upstream error."
    if "API key is not set" in msg:
        return "Upstream is not configured (missing API key). Set HEARTH_UPSTREAM_API_KEY in .env."
    if "base URL is not set" in msg:
        return "Upstream is not configured (missing base URL). Set HEARTH_UPSTREAM_BASE_URL in .env."
    if "model is not set" in msg:
        return "Upstream is not configured (no model). Set HEARTH_UPSTREAM_MODEL in .env."
    return msg


class OpenAIUpstreamClient:
    """
    Non-streaming chat completions against any OpenAI-compatible endpoint.

    Credentials travel with each request (tasks may target different
    providers), so SDK clients are cached per (base_url, api_key). Automatic
    retries are off: a failed call fails the task.
    """

    def __init__(self, *, connect_timeout: float = 5.0, read_timeout: float = 60.0) -> None:
        self._timeout = httpx.Timeout(
            connect=float(connect_timeout),
            read=float(read_timeout),
            write=10.0,
            pool=float(connect_timeout),
        )
        self._clients: dict[tuple[str, str], OpenAI] = {}
        self._lock = threading.Lock()

    def _client_for(self, request: ChatRequest) -> OpenAI:
        api_key = (request.api_key or "").strip()
        base_url = (request.base_url or "").strip()
        if not api_key:
            raise UpstreamAPIError("Upstream API key is not set.")
        if not base_url:
            raise UpstreamAPIError("Upstream base URL is not set.")
        if not request.model:
            raise UpstreamAPIError("Upstream model is not set.")

        cache_key = (base_url, api_key)
        with self._lock:
            client = self._clients.get(cache_key)
            if client is None:
                client = OpenAI(
                    base_url=base_url,
                    api_key=api_key,
                    timeout=self._timeout,
                    max_retries=0,
                )
                self._clients[cache_key] = client
        return client

    def _create(self, request: ChatRequest, body: dict[str, Any]) -> str:
        client = self._client_for(request)
        logger.info("Upstream: model=%s messages=%d", body["model"], len(body["messages"]))
        try:
            resp = client.chat.completions.create(**body)
        except Exception as e:
            logger.info("Upstream: %s on model=%s", e.__class__.__name__, body["model"])
            raise to_upstream_error(e, model=body["model"]) from e

        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError, TypeError):
            content = None
        if not content:
            raise UpstreamAPIError("Upstream returned no content.")
        return str(content)

    def complete(self, request: ChatRequest) -> str:
        return self._create(request, request.to_wire())

    def describe_image(self, request: ChatRequest) -> str:
        if not request.image_data_url:
            raise ValueError("request carries no image")
        body = {
            "model": request.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": request.image_prompt or ""},
                        {"type": "image_url", "image_url": {"url": request.image_data_url}},
                    ],
                }
            ],
            "temperature": VISION_TEMPERATURE,
            "max_tokens": VISION_MAX_TOKENS,
        }
        return self._create(request, body)

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()
