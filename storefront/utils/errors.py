from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ErrorType(str, Enum):
    AUTHENTICATION = "AUTHENTICATION"
    NETWORK = "NETWORK"
    VALIDATION = "VALIDATION"
    PERMISSION = "PERMISSION"
    NOT_FOUND = "NOT_FOUND"
    SERVER = "SERVER"
    CLIENT = "CLIENT"
    UNKNOWN = "UNKNOWN"


USER_MESSAGES = {
    ErrorType.AUTHENTICATION: "Authentication failed. Please try logging in again.",
    ErrorType.NETWORK: "Network error. Please check your connection and try again.",
    ErrorType.VALIDATION: "Please check your input and try again.",
    ErrorType.PERMISSION: "You don't have permission to perform this action.",
    ErrorType.NOT_FOUND: "The requested resource was not found.",
    ErrorType.SERVER: "Server error. Please try again later.",
    ErrorType.CLIENT: "The request could not be completed. Please try again.",
    ErrorType.UNKNOWN: "An unexpected error occurred. Please try again.",
}

ERROR_TITLES = {
    ErrorType.AUTHENTICATION: "Authentication Error",
    ErrorType.NETWORK: "Connection Error",
    ErrorType.VALIDATION: "Validation Error",
    ErrorType.PERMISSION: "Permission Denied",
    ErrorType.NOT_FOUND: "Not Found",
    ErrorType.SERVER: "Server Error",
    ErrorType.CLIENT: "Client Error",
}


class AppError(Exception):
    """
    Error raised by the gateway and the state containers.
    `message` is technical, `user_message` is safe to show in a toast.
    """

    def __init__(
        self,
        type: ErrorType,
        message: str,
        *,
        code: Optional[str] = None,
        details: Any = None,
        user_message: Optional[str] = None,
        status_code: Optional[int] = None,
        is_auth_redirect: bool = False,
        is_verification_error: bool = False,
    ):
        super().__init__(message)
        self.type = type
        self.message = message
        self.code = code or f"{type.value}_ERROR"
        self.details = details
        self.user_message = user_message or USER_MESSAGES[type]
        self.status_code = status_code
        self.is_auth_redirect = is_auth_redirect
        self.is_verification_error = is_verification_error
        self.timestamp = datetime.utcnow()

    @property
    def retryable(self) -> bool:
        return self.type in (ErrorType.NETWORK, ErrorType.SERVER)

    def __repr__(self):
        return f"AppError({self.type.value}, {self.message!r}, status={self.status_code})"


class AuthenticationError(AppError):
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "AUTH_ERROR")
        super().__init__(ErrorType.AUTHENTICATION, message, **kwargs)


class LoginRequiredError(AuthenticationError):
    def __init__(self, message: str = "Login required", **kwargs):
        kwargs.setdefault("user_message", "Please login to continue.")
        super().__init__(message, **kwargs)


# -------------------------------
# Factories
# -------------------------------

def create_auth_error(message: str, details: Any = None, **kwargs) -> AppError:
    return AuthenticationError(message, details=details, **kwargs)


def create_network_error(message: str, details: Any = None, **kwargs) -> AppError:
    return AppError(ErrorType.NETWORK, message, details=details, **kwargs)


def create_validation_error(message: str, details: Any = None, **kwargs) -> AppError:
    return AppError(ErrorType.VALIDATION, message, details=details, **kwargs)


def create_permission_error(message: str, details: Any = None, **kwargs) -> AppError:
    return AppError(ErrorType.PERMISSION, message, details=details, **kwargs)


def create_not_found_error(message: str, details: Any = None, **kwargs) -> AppError:
    return AppError(ErrorType.NOT_FOUND, message, details=details, **kwargs)


def create_server_error(message: str, details: Any = None, **kwargs) -> AppError:
    return AppError(ErrorType.SERVER, message, details=details, **kwargs)


def error_for_status(status_code: int, message: str, details: Any = None, **kwargs) -> AppError:
    if status_code == 401:
        return create_auth_error(message, details, status_code=status_code, **kwargs)
    if status_code == 403:
        return create_permission_error(message, details, status_code=status_code, **kwargs)
    if status_code == 404:
        return create_not_found_error(message, details, status_code=status_code, **kwargs)
    if status_code in (400, 409, 422):
        return create_validation_error(message, details, status_code=status_code, **kwargs)
    if status_code == 408:
        return create_network_error(message, details, status_code=status_code, **kwargs)
    if status_code >= 500:
        return create_server_error(message, details, status_code=status_code, **kwargs)
    return AppError(ErrorType.CLIENT, message, details=details, status_code=status_code, **kwargs)


def process_error(error: Any) -> AppError:
    """Normalise anything raised into an AppError."""
    if isinstance(error, AppError):
        return error

    if isinstance(error, Exception):
        message = str(error) or error.__class__.__name__
        lowered = message.lower()
        details = {"original_error": error}

        if "fetch" in lowered or isinstance(error, (ConnectionError, TimeoutError)):
            return create_network_error(message, details)
        if "unauthorized" in lowered or "401" in lowered:
            return create_auth_error(message, details)
        if "forbidden" in lowered or "403" in lowered:
            return create_permission_error(message, details)
        if "not found" in lowered or "404" in lowered:
            return create_not_found_error(message, details)

        return AppError(ErrorType.UNKNOWN, message, details=details)

    return AppError(ErrorType.UNKNOWN, str(error), details={"original_error": error})


def get_error_message(error: Any) -> str:
    processed = process_error(error)
    return processed.user_message or processed.message


def get_error_title(error_type: ErrorType) -> str:
    return ERROR_TITLES.get(error_type, "Unexpected Error")


# -------------------------------
# Error boundaries
# -------------------------------

class ErrorSeverity(str, Enum):
    PAGE = "page"
    FEATURE = "feature"
    COMPONENT = "component"


BOUNDARY_ACTIONS = {
    ErrorSeverity.COMPONENT: ["retry"],
    ErrorSeverity.FEATURE: ["retry", "home"],
    ErrorSeverity.PAGE: ["retry", "home", "report"],
}


def error_boundary_info(error: Any, severity: ErrorSeverity = ErrorSeverity.PAGE, name: Optional[str] = None) -> dict:
    processed = process_error(error)
    return {
        "name": name,
        "severity": severity.value,
        "type": processed.type.value,
        "title": get_error_title(processed.type),
        "message": processed.user_message,
        "actions": BOUNDARY_ACTIONS[severity],
        "timestamp": processed.timestamp.isoformat(),
    }
