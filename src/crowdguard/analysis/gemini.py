"""
Gemini Client
=============

Minimal async client for the Gemini generateContent REST endpoint.

Used by both external capabilities:
    - GeminiRiskScorer (text prompt → structured risk analysis)
    - GeminiFrameInference (still frame → people/gender counts)

Requests always ask for a JSON response constrained by a response schema;
the parsed JSON object is returned to the caller for validation.

Design Rules:
    - Never log the API key
    - Every failure surfaces as GeminiError (callers own the fallback)
"""

import base64
import json
import logging
from typing import Any, Dict, List, Optional

import httpx


logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiError(Exception):
    """Raised when a Gemini call fails or returns an unusable payload."""
    pass


def text_part(text: str) -> Dict[str, Any]:
    return {"text": text}


def jpeg_part(jpeg: bytes) -> Dict[str, Any]:
    return {
        "inlineData": {
            "mimeType": "image/jpeg",
            "data": base64.b64encode(jpeg).decode("ascii"),
        }
    }


class GeminiClient:
    """
    Async Gemini REST client.

    Attributes:
        model: Model name (e.g. "gemini-2.0-flash")
        base_url: API root
        timeout: HTTP timeout in seconds

    Example:
        client = GeminiClient(api_key="...", model="gemini-2.0-flash")
        data = await client.generate_json([text_part("...")], schema)
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name
            base_url: API root URL
            timeout: HTTP timeout (seconds)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if not api_key:
            raise GeminiError("Gemini API key is not configured")

        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport
        self.call_count: int = 0
        self.error_count: int = 0

        logger.info(f"GeminiClient initialized: model={model}, timeout={timeout}s")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate_json(
        self,
        parts: List[Dict[str, Any]],
        response_schema: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Run one generateContent call and parse the JSON answer.

        Args:
            parts: Content parts (text and/or inline images)
            response_schema: Gemini response schema for the JSON output

        Returns:
            The parsed JSON object.

        Raises:
            GeminiError: On transport errors, HTTP errors or bad payloads
        """
        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            },
        }

        self.call_count += 1
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"x-goog-api-key": self._api_key},
                )
                resp.raise_for_status()
                body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            self.error_count += 1
            raise GeminiError(f"Gemini request failed: {e}") from e

        return self._extract_json(body)

    def _extract_json(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
            data = json.loads(text.strip() or "{}")
        except (KeyError, IndexError, TypeError, AttributeError, json.JSONDecodeError) as e:
            self.error_count += 1
            raise GeminiError(f"Malformed Gemini response: {e}") from e

        if not isinstance(data, dict):
            self.error_count += 1
            raise GeminiError("Gemini response is not a JSON object")
        return data
