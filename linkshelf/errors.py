from __future__ import annotations


class LinkShelfError(Exception):
    status_code = 500
    default_message = "internal error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(LinkShelfError):
    status_code = 400
    default_message = "invalid input"


class InvalidUrlError(ValidationError):
    default_message = "Invalid URL format"


class AuthError(LinkShelfError):
    status_code = 401
    default_message = "authentication required"


class InvalidCredentialsError(AuthError):
    default_message = "Invalid credentials"


class InvalidPasswordError(InvalidCredentialsError):
    pass


class TokenError(AuthError):
    status_code = 403
    default_message = "Invalid or expired token"


class NotSignedInError(AuthError):
    default_message = "not signed in"


class NotFoundError(LinkShelfError):
    status_code = 404
    default_message = "not found"


class UserNotFoundError(NotFoundError):
    default_message = "User not found"


class LinkNotFoundError(NotFoundError):
    default_message = "Link not found"


class ConflictError(LinkShelfError):
    status_code = 409
    default_message = "conflict"


class DuplicateUserError(ConflictError):
    default_message = "User already exists"


class DuplicateLinkError(ConflictError):
    default_message = "Link already exists"


class ServiceUnavailableError(LinkShelfError):
    status_code = 503
    default_message = "Storage service unavailable"


class StoreConflictError(ServiceUnavailableError):
    default_message = "document changed during update"


_BY_STATUS = {
    400: ValidationError,
    401: AuthError,
    403: TokenError,
    404: NotFoundError,
    409: ConflictError,
}


def error_for_status(status_code: int, message: str | None = None) -> LinkShelfError:
    """Map an HTTP status back onto the error hierarchy."""
    if message == UserNotFoundError.default_message:
        return UserNotFoundError(message)
    if message == LinkNotFoundError.default_message:
        return LinkNotFoundError(message)
    if message == DuplicateUserError.default_message:
        return DuplicateUserError(message)
    if message == DuplicateLinkError.default_message:
        return DuplicateLinkError(message)
    if message == InvalidUrlError.default_message:
        return InvalidUrlError(message)
    if status_code == 401 and message == InvalidCredentialsError.default_message:
        return InvalidCredentialsError(message)
    error_cls = _BY_STATUS.get(status_code)
    if error_cls is None:
        if status_code >= 500:
            return ServiceUnavailableError(message or f"HTTP {status_code}")
        return LinkShelfError(message or f"HTTP {status_code}")
    return error_cls(message)
