"""Folds converted tools into one immutable catalog for a dispatch."""

from __future__ import annotations

import json
import logging
import re
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import quote

from .errors import ParameterNotFoundError
from .models import Route, SchemaDetail, SelectedTool, ToolCatalog
from .openapi import SchemaConverter


logger = logging.getLogger(__name__)

_ROUTE_PARAM = re.compile(r":(\w+)")


def stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def substitute_path_params(
    route_path: str, parameters: Optional[Mapping[str, Any]], function_name: str
) -> str:
    """Replace ``:param`` segments with URL-encoded argument values."""
    parameters = parameters or {}

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        value = parameters.get(name)
        if value is None or value == "":
            raise ParameterNotFoundError(
                f"Parameter {name} not found for function {function_name}"
            )
        return quote(stringify(value), safe="-_.!~*'()")

    return _ROUTE_PARAM.sub(replace, route_path)


class CatalogBuilder:
    def __init__(self, converter: SchemaConverter) -> None:
        self.converter = converter
        self._tools: List[Dict[str, Any]] = []
        self._route_map: Dict[str, str] = {}
        self._details: List[SchemaDetail] = []
        self._failures: Dict[str, str] = {}
        self._owners: Dict[str, int] = {}

    async def add(self, tool: SelectedTool) -> bool:
        logger.info("Converting schema for tool: %s", tool.name)
        try:
            converted = await self.converter.convert(tool.parsed_schema())
        except Exception as exc:
            logger.exception("Error converting schema for tool: %s", tool.name)
            self._failures[tool.name] = str(exc)
            return False

        # Tools are told apart by position since display names may repeat.
        index = len(self._details)
        routes: Dict[str, Route] = {}
        for function, route in zip(converted.functions, converted.routes):
            owner = self._owners.get(function.name)
            if owner is not None and owner != index:
                logger.warning(
                    "Function %s from tool %s already provided by tool %s; skipping",
                    function.name,
                    tool.name,
                    self._details[owner].title,
                )
                continue
            self._owners[function.name] = index
            self._tools.append(function.to_tool())
            routes[route.operation_id] = route

        detail = SchemaDetail(
            title=converted.info.title,
            description=converted.info.description,
            url=converted.info.server,
            headers=tool.headers_string(),
            routes=MappingProxyType(routes),
            credential=converted.service.credential,
            service_name=converted.service.name,
        )
        self._details.append(detail)
        self._route_map.update(detail.route_map)
        logger.info("Schema converted successfully for tool: %s", tool.name)
        return True

    def build(self) -> ToolCatalog:
        return ToolCatalog(
            tools=tuple(self._tools),
            route_map=MappingProxyType(dict(self._route_map)),
            details=tuple(self._details),
            failures=MappingProxyType(dict(self._failures)),
        )


async def build_catalog(tools: Iterable[SelectedTool], converter: SchemaConverter) -> ToolCatalog:
    builder = CatalogBuilder(converter)
    for tool in tools:
        await builder.add(tool)
    return builder.build()
