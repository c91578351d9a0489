"""JSON reference dereferencing for OpenAPI operation objects."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import unquote, urljoin

import httpx

from .errors import RefResolutionError


logger = logging.getLogger(__name__)


class RefResolver:
    """Inlines ``$ref`` pointers, local or fetched over HTTP.

    A reference that is already being resolved further up the current branch
    is left in place as ``{"$ref": ...}``, so cyclic schemas produce a finite
    tree. Fetched documents are cached for the lifetime of the resolver.
    """

    def __init__(
        self,
        timeout_seconds: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._documents: Dict[str, Any] = {}

    async def dereference(self, node: Any, root: Any, base_uri: Optional[str] = None) -> Any:
        return await self._walk(node, root, base_uri, ())

    async def _walk(
        self, node: Any, root: Any, base_uri: Optional[str], stack: Tuple[str, ...]
    ) -> Any:
        if isinstance(node, list):
            return [await self._walk(item, root, base_uri, stack) for item in node]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if not isinstance(ref, str):
            return {key: await self._walk(value, root, base_uri, stack) for key, value in node.items()}

        key, target, target_root, target_uri = await self._lookup(ref, root, base_uri)
        if key in stack:
            logger.debug("Leaving cyclic reference unresolved: %s", ref)
            return dict(node)

        resolved = await self._walk(target, target_root, target_uri, stack + (key,))
        siblings = {k: v for k, v in node.items() if k != "$ref"}
        if siblings and isinstance(resolved, dict):
            resolved = {**resolved, **await self._walk(siblings, root, base_uri, stack)}
        return resolved

    async def _lookup(
        self, ref: str, root: Any, base_uri: Optional[str]
    ) -> Tuple[str, Any, Any, Optional[str]]:
        location, _, fragment = ref.partition("#")
        if location:
            document_uri = urljoin(base_uri or "", location)
            if not document_uri.startswith(("http://", "https://")):
                raise RefResolutionError(f"Cannot resolve external reference: {ref}")
            document = await self._load(document_uri)
        else:
            document_uri = base_uri
            document = root

        target = self._follow_pointer(document, fragment, ref)
        return f"{document_uri or ''}#{fragment}", target, document, document_uri

    async def _load(self, uri: str) -> Any:
        cached = self._documents.get(uri)
        if cached is not None:
            return cached

        logger.info("Fetching referenced document: %s", uri)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.get(uri)
                response.raise_for_status()
                document = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RefResolutionError(f"Failed to load referenced document {uri}: {exc}") from exc

        self._documents[uri] = document
        return document

    def _follow_pointer(self, document: Any, fragment: str, ref: str) -> Any:
        if fragment in ("", "/"):
            return document
        if not fragment.startswith("/"):
            raise RefResolutionError(f"Unsupported reference: {ref}")

        current = document
        for raw in fragment[1:].split("/"):
            part = unquote(raw).replace("~1", "/").replace("~0", "~")
            if isinstance(current, dict) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                raise RefResolutionError(f"Could not resolve reference: {ref}")
        return current
