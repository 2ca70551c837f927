from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from .config import Settings
from .errors import QuotaExceeded, RateLimited, ServiceUnavailable, UpstreamError

logger = logging.getLogger("pricescout.gateway")

DEFAULT_TEMPERATURE = 0.7
ERROR_BODY_LOG_LIMIT = 500


class ChatCompletionClient:
    """Thin wrapper around an OpenAI-compatible chat-completion endpoint."""

    def __init__(self, settings: Settings, http_client: httpx.Client) -> None:
        """Purpose: Bind gateway settings to a shared HTTP client.
        Inputs/Outputs: Inputs are Settings and an httpx.Client; no return value.
        Side Effects / State: None; the API key is checked per call, not here.
        Dependencies: Uses Settings.gateway_url/model/gateway_api_key.
        Failure Modes: None at construction.
        If Removed: The analysis pipeline cannot reach the AI gateway.
        Testing Notes: Pass an httpx.Client with MockTransport to observe requests.
        """
        self._settings = settings
        self._http = http_client

    def complete(
        self, messages: List[Dict[str, str]], temperature: float = DEFAULT_TEMPERATURE
    ) -> Optional[str]:
        """Purpose: Send one chat-completion request and return the reply text.
        Inputs/Outputs: Input is the role-tagged message list; output is the content
            string of the first choice, or None when the envelope carries no text.
        Side Effects / State: Exactly one POST to the gateway; no retries.
        Dependencies: Uses httpx and the error taxonomy in errors.py.
        Failure Modes: ServiceUnavailable when no API key is configured; RateLimited on
            429; QuotaExceeded on 402; UpstreamError on other non-2xx statuses,
            transport failures, or a body that is not JSON.
        If Removed: No analysis can be produced.
        Testing Notes: Return 429/402/503 from a MockTransport and check the mapping.
        """
        if not self._settings.gateway_api_key:
            logger.error("gateway api key is not configured")
            raise ServiceUnavailable("gateway api key missing")

        body = {
            "model": self._settings.model,
            "messages": messages,
            "temperature": temperature,
        }
        headers = {
            "Authorization": f"Bearer {self._settings.gateway_api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self._http.post(self._settings.gateway_url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("gateway transport failure error=%s", exc)
            raise UpstreamError(f"gateway transport failure: {exc}") from exc

        if not response.is_success:
            logger.error(
                "gateway error status=%s body=%s",
                response.status_code,
                response.text[:ERROR_BODY_LOG_LIMIT],
            )
            if response.status_code == 429:
                raise RateLimited("gateway rate limit")
            if response.status_code == 402:
                raise QuotaExceeded("gateway credits exhausted")
            raise UpstreamError(f"gateway status {response.status_code}", status=response.status_code)

        content = _extract_content(response)
        logger.info("gateway reply received length=%d", len(content or ""))
        return content


def _extract_content(response: httpx.Response) -> Optional[str]:
    """Purpose: Pull choices[0].message.content out of a chat-completion envelope.
    Inputs/Outputs: Input is a 2xx gateway response; output is the reply text, or
        None when the JSON envelope has no textual content (e.g. a safety block).
    Side Effects / State: Logs a warning when content is missing.
    Dependencies: httpx.Response.json.
    Failure Modes: UpstreamError only when the body is not JSON at all.
    If Removed: complete() has no reply text to hand to the decoder.
    Testing Notes: content null, empty choices, and {} must all yield None.
    """
    try:
        data = response.json()
    except ValueError as exc:
        logger.error("gateway envelope is not JSON body=%s", response.text[:ERROR_BODY_LOG_LIMIT])
        raise UpstreamError("gateway envelope is not JSON") from exc
    # A JSON envelope without text is a completed call, not an upstream failure.
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        logger.warning("gateway envelope missing content keys=%s", list(data) if isinstance(data, dict) else type(data))
        return None
    if not isinstance(content, str):
        logger.warning("gateway content is not text type=%s", type(content).__name__)
        return None
    return content
