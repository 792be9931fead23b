"""HTTP client for OpenAI-compatible text-generation endpoints."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from ..errors import QuotaExceededError, UpstreamError


class TextGenerator:
    """Send a prompt to ``{endpoint}/chat/completions`` and return the reply text."""

    def __init__(
        self,
        endpoint: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        temperature: float = 0.2,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.temperature = temperature
        self.logger = logger or structlog.get_logger("hyperlocal.llm")
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def generate(
        self,
        prompt: str,
        system: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        json_mode: bool = False,
    ) -> str:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if tools:
            payload["tools"] = tools
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = self._client.post(
                f"{self.endpoint}/chat/completions",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Request to {self.endpoint} failed: {exc}") from exc
        if self._is_quota(response):
            raise QuotaExceededError(
                f"Quota exceeded (429 RESOURCE_EXHAUSTED) at {self.endpoint}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise UpstreamError(
                f"Unexpected status {response.status_code} from {self.endpoint}",
                status_code=response.status_code,
            )
        return self._extract_text(response)

    @staticmethod
    def _is_quota(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        return response.status_code >= 400 and "RESOURCE_EXHAUSTED" in response.text

    @staticmethod
    def _extract_text(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError("Response body is not JSON") from exc
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        content = message.get("content")
        if isinstance(content, list):
            return "".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )
        return content or ""


__all__ = ["TextGenerator"]
