"""Enforce row limits on READ operations for safety and performance."""

from typing import Optional

from .ir_types import ReadOperation


def enforce_read_limit(op, default_limit: Optional[int] = None, max_limit: Optional[int] = None):
    """
    Enforces row limits on READ operations.

    - If no LIMIT exists: adds LIMIT default_limit (when configured)
    - If LIMIT exists: caps it at max_limit (when configured)
    - Non-READ operations are returned unmodified

    Args:
        op: Operation descriptor
        default_limit: Limit to add if none exists
        max_limit: Maximum allowed limit

    Returns:
        The same descriptor, or a copy with the adjusted limit

    Examples:
        >>> enforce_read_limit(ReadOperation(table="users"), default_limit=1000).limit
        1000

        >>> enforce_read_limit(ReadOperation(table="users", limit=50000), max_limit=10000).limit
        10000
    """
    if not isinstance(op, ReadOperation):
        return op

    limit = op.limit
    if limit is None:
        limit = default_limit
    if max_limit is not None and (limit is None or limit > max_limit):
        limit = max_limit

    if limit == op.limit:
        return op
    return op.model_copy(update={'limit': limit})
