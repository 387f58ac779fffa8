"""OpenAI-compatible HTTP providers."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import requests

from ragline.core.errors import ProviderError, TransientProviderError

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = {408, 409, 425, 429}


def _headers(api_key: str | None) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def _post(
    session: requests.Session,
    url: str,
    payload: dict[str, Any],
    api_key: str | None,
    timeout: float,
) -> dict[str, Any]:
    """POST ``payload`` and classify failures as transient or terminal."""
    try:
        response = session.post(url, json=payload, headers=_headers(api_key), timeout=timeout)
    except (requests.Timeout, requests.ConnectionError) as exc:
        raise TransientProviderError(f"{url}: {exc}") from exc
    except requests.RequestException as exc:
        raise ProviderError(f"{url}: {exc}") from exc

    if response.status_code >= 500 or response.status_code in _TRANSIENT_STATUS:
        raise TransientProviderError(f"{url} returned HTTP {response.status_code}")
    if not response.ok:
        raise ProviderError(f"{url} returned HTTP {response.status_code}: {response.text[:200]}")
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(f"{url} returned a non-JSON body") from exc


class HttpEmbeddingProvider:
    """Client for ``/v1/embeddings`` style endpoints."""

    name = "http"

    def __init__(
        self,
        api_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = api_url
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        data = _post(
            self._session,
            self.api_url,
            {"input": list(texts), "model": self.model},
            self.api_key,
            self.timeout,
        )
        items = data.get("data") if isinstance(data, Mapping) else None
        if not isinstance(items, list) or not all(isinstance(item, Mapping) for item in items):
            raise ProviderError("Malformed embedding payload: expected a 'data' list of objects")
        try:
            items = sorted(items, key=lambda item: item.get("index", 0))
            return [[float(value) for value in item["embedding"]] for item in items]
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderError(f"Malformed embedding payload: {exc}") from exc


class HttpGenerationProvider:
    """Client for ``/v1/chat/completions`` style endpoints.

    Generation is not retried, so timeouts are reported as plain
    ``ProviderError`` along with every other failure.
    """

    name = "http"

    def __init__(
        self,
        api_url: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def generate(self, prompt: str, model: str) -> str:
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.1,
        }
        try:
            data = _post(self._session, self.api_url, payload, self.api_key, self.timeout)
        except TransientProviderError as exc:
            raise ProviderError(str(exc)) from exc
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(f"Malformed completion payload: {exc}") from exc
        if not isinstance(content, str):
            raise ProviderError("Completion content is not text")
        logger.debug("Generated %s characters with %s", len(content), model)
        return content.strip()


__all__ = ["HttpEmbeddingProvider", "HttpGenerationProvider"]
