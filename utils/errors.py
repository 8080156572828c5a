"""Application exceptions mapped to HTTP responses by the handlers in main.py"""
from typing import List, Optional, Union


class ApiError(Exception):
    """Base error carrying the HTTP status used in the response envelope."""
    status_code = 500

    def __init__(self, error: Union[str, List[str]], status_code: Optional[int] = None):
        super().__init__(error if isinstance(error, str) else "; ".join(error))
        self.error = error
        if status_code is not None:
            self.status_code = status_code


class InputError(ApiError):
    """Malformed request input, rejected before any store call."""
    status_code = 400


class TransactionValidationError(ApiError):
    """Field constraints violated on a single-record path."""
    status_code = 400

    def __init__(self, messages: List[str]):
        super().__init__(list(messages))
        self.messages = list(messages)


class NotFoundError(ApiError):
    status_code = 404


class AuthError(ApiError):
    status_code = 401

    def __init__(self, error: str = "Not authorized to access this route"):
        super().__init__(error)


class StoreError(ApiError):
    """Unrecovered failure reported by the record store."""
    status_code = 500

    def __init__(self, kind: str, detail: str = ""):
        super().__init__(f"{kind}: {detail}" if detail else kind)
        self.kind = kind
        self.detail = detail


class ServiceUnavailable(ApiError):
    status_code = 503
