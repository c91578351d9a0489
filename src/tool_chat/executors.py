"""Execution layer turning resolved tool calls into HTTP requests."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

import httpx

from .catalog import stringify
from .errors import ToolChatError
from .logging import redact_payload
from .models import Route, SchemaDetail
from .services import DALLE_ENDPOINT

logger = logging.getLogger(__name__)

_IMAGES_GENERATIONS = "/v1/images/generations"


class ToolCallExecutor:
    def __init__(
        self,
        timeout_seconds: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def execute(
        self,
        detail: SchemaDetail,
        route: Route,
        path: str,
        arguments: Mapping[str, Any],
        credential: str,
    ) -> Any:
        custom_headers = self._parse_custom_headers(detail)

        if route.request_in_body:
            headers = {"Content-Type": "application/json", "Authorization": f"Bearer {credential}"}
            if custom_headers is not None:
                headers.update(custom_headers)
            url = self._canonical_url(detail.url + path)
            body = arguments.get("requestBody")
            if body is None:
                body = arguments
            logger.info(
                "Sending POST request to: %s with body: %s",
                url,
                redact_payload(body) if isinstance(body, Mapping) else body,
            )
            return await self._send("POST", url, headers, json.dumps(body))

        headers = {"Authorization": f"Bearer {credential}"}
        if custom_headers is not None:
            headers = custom_headers
        query = self._build_query(arguments.get("parameters"))
        url = self._canonical_url(detail.url + path + (f"?{query}" if query else ""))
        logger.info("Sending GET request to: %s", url)
        return await self._send("GET", url, headers, None)

    async def _send(
        self, method: str, url: str, headers: Dict[str, str], content: Optional[str]
    ) -> Any:
        logger.debug("Request headers: %s", redact_payload(headers))
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.request(method, url, headers=headers, content=content)
        except httpx.HTTPError as exc:
            logger.warning("Tool request %s %s failed: %s", method, url, exc)
            return {"error": str(exc) or type(exc).__name__, "details": None}

        if not response.is_success:
            details = self._decode(response)
            logger.error("Error from %s: %s %s", url, response.reason_phrase, details)
            return {"error": response.reason_phrase or str(response.status_code), "details": details}

        if not response.content:
            return {}
        data = self._decode(response)
        if isinstance(data, str):
            return {"text": data}
        logger.info("Received response from %s", url)
        return data

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    def _parse_custom_headers(self, detail: SchemaDetail) -> Optional[Dict[str, str]]:
        if not detail.headers or not isinstance(detail.headers, str):
            return None
        try:
            parsed = json.loads(detail.headers)
        except json.JSONDecodeError as exc:
            raise ToolChatError(f"Invalid custom headers for {detail.title}: {exc}", 400) from exc
        if not isinstance(parsed, dict):
            raise ToolChatError(f"Custom headers for {detail.title} must be a JSON object", 400)
        return {str(key): stringify(value) for key, value in parsed.items()}

    def _build_query(self, parameters: Any) -> str:
        if not isinstance(parameters, Mapping):
            return ""
        return urlencode(
            {key: stringify(value) for key, value in parameters.items() if value is not None}
        )

    def _canonical_url(self, url: str) -> str:
        if _IMAGES_GENERATIONS in url:
            return DALLE_ENDPOINT
        return url
