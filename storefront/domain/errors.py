# storefront/domain/errors.py
"""
Service-level error taxonomy.

Services raise these by kind; the HTTP layer maps ``status_code`` onto the
error envelope. Messages are safe to show to clients.
"""


class ServiceError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Invalid request"


class InvalidTransitionError(ServiceError):
    status_code = 400
    default_message = "Invalid status transition"


class EmptyCartError(ServiceError):
    status_code = 400
    default_message = "Cart is empty"


class OutOfStockError(ServiceError):
    status_code = 400
    default_message = "Insufficient stock"


class InvalidCurrentPasswordError(ServiceError):
    status_code = 400
    default_message = "Invalid current password"


class OAuthOnlyAccountError(ServiceError):
    status_code = 400
    default_message = "Cannot change password for OAuth users"


class AuthenticationError(ServiceError):
    status_code = 401
    default_message = "Authentication required"


# verification failures share one public message; the subclass is for logs and tests only
class InvalidTokenError(AuthenticationError):
    default_message = "Invalid or expired token"


class TokenExpiredError(InvalidTokenError):
    pass


class TokenRevokedError(InvalidTokenError):
    pass


class InvalidCredentialsError(AuthenticationError):
    default_message = "Invalid credentials"


class AuthorizationError(ServiceError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ServiceError):
    status_code = 409
    default_message = "Conflict"


class AlreadyExistsError(ConflictError):
    default_message = "User already exists"


class DependencyError(ServiceError):
    status_code = 503
    default_message = "Downstream service unavailable"

    def __init__(self, message: str | None = None, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable
