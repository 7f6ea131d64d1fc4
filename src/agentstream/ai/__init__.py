"""AI client, agent loop and tool wiring."""

from .client import AIClient, ClientSettings
from .errors import ModelInvocationError, parse_error_message

__all__ = ["AIClient", "ClientSettings", "ModelInvocationError", "parse_error_message"]
