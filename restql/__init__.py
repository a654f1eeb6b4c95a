"""restql: REST-shaped query descriptors to parameterized SQL."""

from .ir_types import (
    Condition,
    Group,
    JoinSpec,
    OrderBy,
    QueryOptions,
    CreateOperation,
    ReadOperation,
    UpdateOperation,
    DeleteOperation,
    RestRequest,
    CompiledQuery,
)
from .errors import (
    RestQLError,
    ValidationError,
    QueryDecodeError,
    UnsupportedOperationError,
    MissingValuesError,
    UnsafeStatementError,
)
from .validator import (
    ValidationOptions,
    DEFAULT_VALIDATION_OPTIONS,
    validate_query,
)
from .parser import parse_request
from .dialects import Dialect, get_dialect
from .generator import SQLGenerator, compile_operation
from .codec import encode_query, decode_query
from .builder import QueryBuilder
from .config import RestQLConfig, load_config
from .service import RestQL, create_restql

__all__ = [
    "Condition",
    "Group",
    "JoinSpec",
    "OrderBy",
    "QueryOptions",
    "CreateOperation",
    "ReadOperation",
    "UpdateOperation",
    "DeleteOperation",
    "RestRequest",
    "CompiledQuery",
    "RestQLError",
    "ValidationError",
    "QueryDecodeError",
    "UnsupportedOperationError",
    "MissingValuesError",
    "UnsafeStatementError",
    "ValidationOptions",
    "DEFAULT_VALIDATION_OPTIONS",
    "validate_query",
    "parse_request",
    "Dialect",
    "get_dialect",
    "SQLGenerator",
    "compile_operation",
    "encode_query",
    "decode_query",
    "QueryBuilder",
    "RestQLConfig",
    "load_config",
    "RestQL",
    "create_restql",
]
