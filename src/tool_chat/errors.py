"""Error types raised while converting tools and dispatching tool calls."""

from __future__ import annotations


class ToolChatError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class SpecValidationError(ToolChatError):
    status_code = 422


class UnsupportedServiceError(ToolChatError):
    status_code = 422


class RefResolutionError(ToolChatError):
    status_code = 422


class MissingCredentialError(ToolChatError):
    status_code = 400


class ToolCallResolutionError(ToolChatError):
    """A model function call could not be mapped back to a concrete route."""

    status_code = 400


class FunctionNotFoundError(ToolCallResolutionError):
    pass


class PathNotFoundError(ToolCallResolutionError):
    pass


class ParameterNotFoundError(ToolCallResolutionError):
    pass


class ToolArgumentsError(ToolCallResolutionError):
    pass
