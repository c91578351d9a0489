"""OpenAPI validation and conversion into callable function descriptors."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .errors import SpecValidationError
from .models import ConvertedSchema, FunctionDescriptor, Route, SchemaInfo
from .refs import RefResolver
from .services import ServiceResolver


logger = logging.getLogger(__name__)

HTTP_METHODS = {"get", "put", "post", "delete", "options", "head", "patch", "trace"}


def validate_openapi(spec: Dict[str, Any]) -> None:
    info = spec.get("info")
    if not info or not isinstance(info, dict):
        raise SpecValidationError("('info'): field required")
    if not info.get("title"):
        raise SpecValidationError("('info', 'title'): field required")
    if not info.get("version"):
        raise SpecValidationError("('info', 'version'): field required")

    servers = spec.get("servers")
    if (
        not isinstance(servers, list)
        or not servers
        or not isinstance(servers[0], dict)
        or not servers[0].get("url")
    ):
        raise SpecValidationError("Could not find a valid URL in `servers`")

    paths = spec.get("paths")
    if not paths or not isinstance(paths, dict):
        raise SpecValidationError("No paths found in the OpenAPI spec")
    for path in paths:
        if not path.startswith("/"):
            raise SpecValidationError(f"Path {path} does not start with a slash")


class SchemaConverter:
    def __init__(
        self, service_resolver: ServiceResolver, ref_resolver: Optional[RefResolver] = None
    ) -> None:
        self.service_resolver = service_resolver
        self.ref_resolver = ref_resolver or RefResolver()

    async def convert(self, spec: Dict[str, Any], base_uri: Optional[str] = None) -> ConvertedSchema:
        if not isinstance(spec, dict):
            raise SpecValidationError("OpenAPI spec must be a JSON object")
        validate_openapi(spec)

        server_url = spec["servers"][0]["url"]
        service = self.service_resolver.resolve(server_url)
        logger.info("Using service=%s base_url=%s", service.name, service.base_url)

        functions: List[FunctionDescriptor] = []
        routes: List[Route] = []

        for path, methods in spec["paths"].items():
            if not isinstance(methods, dict):
                continue
            shared_parameters = methods.get("parameters") or []
            for method, operation_with_refs in methods.items():
                if method.lower() not in HTTP_METHODS or not isinstance(operation_with_refs, dict):
                    continue
                operation = await self.ref_resolver.dereference(
                    {"parameters": shared_parameters, "operation": operation_with_refs},
                    spec,
                    base_uri,
                )
                function, route = self._convert_operation(
                    path, method, operation["operation"], operation["parameters"]
                )
                functions.append(function)
                routes.append(route)

        info = SchemaInfo(
            title=spec["info"]["title"],
            description=spec["info"].get("description"),
            server=service.base_url,
        )
        return ConvertedSchema(
            info=info, routes=tuple(routes), functions=tuple(functions), service=service
        )

    def _convert_operation(
        self,
        path: str,
        method: str,
        operation: Dict[str, Any],
        shared_parameters: List[Dict[str, Any]],
    ) -> Tuple[FunctionDescriptor, Route]:
        operation_id = operation.get("operationId") or ""
        if not operation_id:
            logger.warning("Operation %s %s has no operationId", method.upper(), path)
        description = operation.get("description") or operation.get("summary") or ""

        schema: Dict[str, Any] = {"type": "object", "properties": {}}
        body_schema = self._extract_body_schema(operation.get("requestBody") or {})
        if body_schema:
            schema["properties"]["requestBody"] = body_schema

        parameters = self._merge_parameters(shared_parameters, operation.get("parameters") or [])
        if parameters:
            properties: Dict[str, Any] = {}
            required: List[str] = []
            for parameter in parameters:
                if not parameter.get("schema"):
                    continue
                properties[parameter["name"]] = parameter["schema"]
                if parameter.get("required"):
                    required.append(parameter["name"])
            parameter_schema: Dict[str, Any] = {"type": "object", "properties": properties}
            if required:
                parameter_schema["required"] = required
            schema["properties"]["parameters"] = parameter_schema

        function = FunctionDescriptor(name=operation_id, description=description, parameters=schema)
        route = Route(
            path=path,
            method=method.lower(),
            operation_id=operation_id,
            request_in_body="requestBody" in operation,
        )
        return function, route

    def _merge_parameters(
        self, shared: List[Dict[str, Any]], own: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        merged: Dict[str, Dict[str, Any]] = {}
        for parameter in [*shared, *own]:
            if isinstance(parameter, dict) and parameter.get("name"):
                merged[parameter["name"]] = parameter
        return list(merged.values())

    def _extract_body_schema(self, request_body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        content = request_body.get("content") or {}
        json_body = content.get("application/json") or {}
        return json_body.get("schema")


async def openapi_to_functions(
    spec: Dict[str, Any],
    service_resolver: ServiceResolver,
    ref_resolver: Optional[RefResolver] = None,
) -> ConvertedSchema:
    return await SchemaConverter(service_resolver, ref_resolver).convert(spec)
