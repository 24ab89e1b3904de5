# src/codable_bff/errors.py

import typing

from fastapi import status

GENERIC_MESSAGE = "Something went wrong. Please try again."


class CodableError(Exception):
    """
    Base class for every failure the BFF reports to the browser.
    `user_message` is the sentence shown to the user; `status_code` is used
    when the error reaches the HTTP boundary.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = GENERIC_MESSAGE

    def __init__(self, user_message: typing.Optional[str] = None, detail: typing.Optional[str] = None):
        self.user_message = user_message or self.default_message
        self.detail = detail
        super().__init__(self.user_message)


class Unauthenticated(CodableError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Please sign in to continue."


class InvalidCredentials(CodableError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password. Please try again."


class UnconfirmedEmail(CodableError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Please verify your email address before signing in."


class RateLimited(CodableError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many attempts. Please wait a moment and try again."


class PasswordMismatch(CodableError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Passwords do not match"


class PasswordTooShort(CodableError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Password must be at least 6 characters"


class AdminVerificationFailed(CodableError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Invalid admin credentials."


class MalformedAIResponse(CodableError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "The AI response could not be understood. Please try again."


class NetworkOrProviderError(CodableError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = GENERIC_MESSAGE


class ProviderNotConfigured(NetworkOrProviderError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "This AI provider is not configured."


class HostedServiceError(NetworkOrProviderError):
    """Error response returned by the hosted auth/database service."""

    def __init__(self, status_code: int, message: str):
        self.service_status = status_code
        self.service_message = message or ""
        super().__init__(GENERIC_MESSAGE, detail=f"{status_code}: {message}")


class InvalidTransition(ValueError):
    def __init__(self, step: str, action: str):
        self.step = step
        self.action = action
        super().__init__(f"Action '{action}' is not available from step '{step}'.")


# --- Auth error classification ---

_UNCONFIRMED_MARKERS = ("email not confirmed", "not confirmed", "email_not_confirmed")
_RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "security purposes", "over_email_send_rate_limit")
_INVALID_CREDENTIAL_MARKERS = ("invalid login credentials", "invalid credentials", "invalid_grant",
                               "invalid email or password")
_SHORT_PASSWORD_MARKERS = ("at least 6 characters", "password should be at least", "weak_password")


def classify_auth_error(error: typing.Union[BaseException, str, None]) -> CodableError:
    """
    Maps a raw error (service message, exception or plain string) to one of
    the fixed user-facing auth errors.
    """
    if isinstance(error, CodableError) and not isinstance(error, HostedServiceError):
        return error

    if isinstance(error, HostedServiceError):
        raw = error.service_message
        if error.service_status == status.HTTP_429_TOO_MANY_REQUESTS:
            return RateLimited(detail=raw)
    else:
        raw = str(error or "")

    message = raw.lower()
    if any(marker in message for marker in _UNCONFIRMED_MARKERS):
        return UnconfirmedEmail(detail=raw)
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return RateLimited(detail=raw)
    if any(marker in message for marker in _INVALID_CREDENTIAL_MARKERS):
        return InvalidCredentials(detail=raw)
    if "passwords do not match" in message:
        return PasswordMismatch(detail=raw)
    if any(marker in message for marker in _SHORT_PASSWORD_MARKERS):
        return PasswordTooShort(detail=raw)
    return CodableError(GENERIC_MESSAGE, detail=raw)
