"""
Custom exceptions for query validation, parsing and compilation.
"""

from typing import Optional


class RestQLError(Exception):
    """Base exception for restql errors."""
    pass


class ValidationError(RestQLError):
    """Untrusted query input broke a structural or security rule."""
    def __init__(self, message: str, kind: str = "structure"):
        super().__init__(message)
        self.kind = kind


class QueryDecodeError(ValidationError):
    """Encoded query envelope is not valid base64 JSON."""
    def __init__(self, message: str):
        super().__init__(message, kind="format")


class UnsupportedOperationError(RestQLError):
    """HTTP verb or operation tag is not one of CREATE/READ/UPDATE/DELETE."""
    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class MissingValuesError(RestQLError):
    """Mutation request carried no rows."""
    pass


class UnsafeStatementError(RestQLError):
    """Compiled SQL did not parse as exactly one expected statement."""
    def __init__(self, message: str, features: Optional[list] = None):
        super().__init__(message)
        self.features = features or []
