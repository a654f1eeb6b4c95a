"""Post-compilation check that generated SQL is one expected statement."""

import logging
from typing import Optional, Set

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, TokenError

from .errors import UnsafeStatementError

logger = logging.getLogger(__name__)

STATEMENT_TYPES = {
    'CREATE': exp.Insert,
    'READ': exp.Select,
    'UPDATE': exp.Update,
    'DELETE': exp.Delete,
}


def verify_statement(sql: str, dialect: str, operation: Optional[str] = None) -> exp.Expression:
    """
    Parse compiled SQL and require exactly one SELECT/INSERT/UPDATE/DELETE.

    Args:
        sql: Compiled SQL text
        dialect: sqlglot dialect name ('mysql', 'postgres', 'sqlite')
        operation: Expected operation tag; any of the four when omitted

    Returns:
        The parsed statement

    Raises:
        UnsafeStatementError: If parsing fails or the statement is unexpected
    """
    try:
        statements = [s for s in sqlglot.parse(sql, read=dialect) if s is not None]
    except (ParseError, TokenError) as e:
        raise UnsafeStatementError(f"Failed to parse SQL: {e}", ["PARSE_ERROR"]) from e

    if len(statements) != 1:
        raise UnsafeStatementError(
            f"Expected one statement, found {len(statements)}", ["MULTIPLE_STATEMENTS"]
        )

    statement = statements[0]
    expected = (STATEMENT_TYPES[operation],) if operation else tuple(STATEMENT_TYPES.values())
    if not isinstance(statement, expected):
        raise UnsafeStatementError(
            f"Unexpected statement type: {type(statement).__name__}", ["STATEMENT_TYPE"]
        )

    unsupported = _find_unsupported_nodes(statement)
    if unsupported:
        feature_list = sorted(unsupported)
        raise UnsafeStatementError(
            f"SQL contains unsupported features: {', '.join(feature_list)}", feature_list
        )

    logger.debug(f"[verifier] {dialect} {type(statement).__name__} ok")
    return statement


def _find_unsupported_nodes(statement: exp.Expression) -> Set[str]:
    """Constructs the compiler never emits."""
    unsupported: Set[str] = set()
    for node in statement.walk():
        if isinstance(node, exp.Subquery):
            unsupported.add("SUBQUERY")
        elif isinstance(node, exp.CTE):
            unsupported.add("CTE")
        elif isinstance(node, exp.Union):
            unsupported.add("UNION")
        elif isinstance(node, exp.Command):
            unsupported.add("COMMAND")
    return unsupported
