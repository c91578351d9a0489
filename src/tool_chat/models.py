"""Internal models for converted tools and inbound chat requests."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


_TEMPLATE_PARAM = re.compile(r"{(\w+)}")


@dataclass(frozen=True)
class ServiceConfig:
    name: str
    credential: str
    base_url: str


@dataclass(frozen=True)
class SchemaInfo:
    title: str
    description: Optional[str]
    server: str


@dataclass(frozen=True)
class Route:
    path: str
    method: str
    operation_id: str
    request_in_body: bool = False

    @property
    def route_path(self) -> str:
        """Path with ``{param}`` placeholders rewritten to ``:param``."""
        return _TEMPLATE_PARAM.sub(r":\1", self.path)


@dataclass(frozen=True)
class FunctionDescriptor:
    name: str
    description: str
    parameters: Dict[str, Any]

    def to_tool(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class ConvertedSchema:
    info: SchemaInfo
    routes: Tuple[Route, ...]
    functions: Tuple[FunctionDescriptor, ...]
    service: ServiceConfig


@dataclass(frozen=True)
class SchemaDetail:
    title: str
    description: Optional[str]
    url: str
    headers: Optional[str]
    routes: Mapping[str, Route]
    credential: str = ""
    service_name: str = ""

    @property
    def route_map(self) -> Dict[str, str]:
        return {route.route_path: name for name, route in self.routes.items()}

    @property
    def request_in_body(self) -> bool:
        # Display only; dispatch reads the flag from the matched route.
        first = next(iter(self.routes.values()), None)
        return bool(first and first.request_in_body)


@dataclass(frozen=True)
class ToolCatalog:
    tools: Tuple[Dict[str, Any], ...] = ()
    route_map: Mapping[str, str] = field(default_factory=dict)
    details: Tuple[SchemaDetail, ...] = ()
    failures: Mapping[str, str] = field(default_factory=dict)

    def find_detail(self, function_name: str) -> Optional[SchemaDetail]:
        for detail in self.details:
            if function_name in detail.routes:
                return detail
        return None


class ChatSettings(BaseModel):
    model_config = ConfigDict(extra="allow", protected_namespaces=())

    model: str
    temperature: Optional[float] = None


class SelectedTool(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    description: Optional[str] = ""
    openapi_schema: Union[str, Dict[str, Any]] = Field(..., alias="schema")
    custom_headers: Optional[Union[str, Dict[str, str]]] = None

    def parsed_schema(self) -> Dict[str, Any]:
        if isinstance(self.openapi_schema, str):
            return json.loads(self.openapi_schema)
        return self.openapi_schema

    def headers_string(self) -> Optional[str]:
        if isinstance(self.custom_headers, dict):
            return json.dumps(self.custom_headers)
        return self.custom_headers or None


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_settings: ChatSettings = Field(..., alias="chatSettings")
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    selected_tools: List[SelectedTool] = Field(default_factory=list, alias="selectedTools")
