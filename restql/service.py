"""RestQL facade: validate, parse, enforce limits and compile in one call."""

import logging
from typing import Any, Optional

from .config import RestQLConfig
from .generator import SQLGenerator
from .ir_types import CompiledQuery, CreateOperation, RestRequest, UpdateOperation
from .limits import enforce_read_limit
from .parser import parse_request
from .validator import validate_query, validate_rows, validate_table_name
from .verifier import verify_statement

logger = logging.getLogger(__name__)


class RestQL:
    """Turns REST requests into CompiledQuery values for one configuration."""

    def __init__(self, config: Optional[RestQLConfig] = None):
        self.config = config or RestQLConfig()
        self.generator = SQLGenerator(self.config.dialect, self.config.schema_name)

    def parse(self, request: RestRequest):
        """Validate the untrusted parts of a request and build its descriptor."""
        options = validate_query(request.query, self.config.validation)
        op = parse_request(request.model_copy(update={'query': options}))

        # Identifiers from the path and body can never be bound as parameters
        validate_table_name(op.table)
        if isinstance(op, (CreateOperation, UpdateOperation)):
            validate_rows(op.rows)

        return enforce_read_limit(op, self.config.default_limit, self.config.max_limit)

    def compile(self, op) -> CompiledQuery:
        compiled = self.generator.compile(op)
        if self.config.verify_sql:
            verify_statement(compiled.sql, self.config.dialect, op.operation)
        return compiled

    def to_sql(self, request: RestRequest) -> CompiledQuery:
        """
        Convert a REST request to a SQL query.

        Args:
            request: Method, path, decoded query and body

        Returns:
            CompiledQuery for the configured dialect

        Raises:
            ValidationError: Untrusted input broke a rule
            UnsupportedOperationError: Unknown HTTP method
            MissingValuesError: Mutation without rows
        """
        op = self.parse(request)
        compiled = self.compile(op)
        logger.debug(f"[restql] {request.method} {request.path} -> {compiled.sql}")
        return compiled


def create_restql(dialect: str = 'postgres', schema: Optional[str] = None, **options: Any) -> RestQL:
    """Shorthand for RestQL(RestQLConfig(dialect=..., schema=..., ...))."""
    return RestQL(RestQLConfig(dialect=dialect, schema_name=schema, **options))
