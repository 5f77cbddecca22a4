"""Exceptions raised along the sign-in flow.

Each carries the HTTP status it maps to; main.py renders them.
"""


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    status_code = 500
    default_message = "Something went wrong."

    def __init__(self, message: str = None, *, detail: str = None) -> None:
        self.message = message or self.default_message
        # Server-side only; never rendered
        self.detail = detail
        super().__init__(self.message)


class ClientProtocolError(GatewayError):
    """Malformed or forged request. Safe to show verbatim."""

    status_code = 400
    default_message = "Bad request."


class MissingState(ClientProtocolError):
    default_message = "State is missing in query parameters."


class MissingCode(ClientProtocolError):
    default_message = "Authorization code is missing in query parameters."


class ProviderDenied(ClientProtocolError):
    """The provider redirected back with an error instead of a code."""

    default_message = "Sign-in was cancelled or refused by the identity provider."


class StateError(ClientProtocolError):
    """State binding failed validation."""


class MissingStateKey(StateError):
    default_message = "State key is missing in cookies."


class StateNotFound(StateError):
    default_message = "Invalid OAuth state."


class StateMismatch(StateError):
    default_message = "Invalid OAuth state."


class AuthorizationDenied(GatewayError):
    status_code = 403
    default_message = "Access denied. Your email is not authorized."


class UpstreamError(GatewayError):
    """Identity provider call failed."""

    status_code = 500
    default_message = "The identity provider could not be reached. Please sign in again."


class NotFound(GatewayError):
    status_code = 404
    default_message = "Not found."
