"""Handler boundary returning (status, body) responses."""

from .handlers import ApiHandlers, ApiResponse

__all__ = ["ApiHandlers", "ApiResponse"]
