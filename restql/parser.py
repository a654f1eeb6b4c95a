"""REST envelope (verb, path, validated options, body) to operation descriptor."""

from typing import Any, List, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from .errors import MissingValuesError, UnsupportedOperationError, ValidationError
from .ir_types import (
    Condition,
    CreateOperation,
    DeleteOperation,
    QueryOptions,
    ReadOperation,
    RestRequest,
    Row,
    UpdateOperation,
)
from .validator import validate_query

ID_FIELD = 'id'
# Second path segment that means "the collection", not a resource id
LIST_MARKER = 'list'


def parse_request(request: RestRequest):
    """
    Reshape a REST request into a CREATE/READ/UPDATE/DELETE descriptor.

    Args:
        request: RestRequest whose query is a validated QueryOptions (a raw
            mapping is validated with default options first)

    Returns:
        CreateOperation, ReadOperation, UpdateOperation or DeleteOperation

    Raises:
        UnsupportedOperationError: For verbs other than GET/POST/PUT/DELETE
        MissingValuesError: For mutations without rows
        ValidationError: For bodies that cannot form a descriptor
    """
    method = (request.method or '').upper()
    table, resource_id = split_path(request.path)

    try:
        return _build_operation(method, table, resource_id, request)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid request body: {e.errors()[0]['msg']}", "structure") from e


def _build_operation(method: str, table: str, resource_id: Optional[str], request: RestRequest):
    if method == 'POST':
        return _parse_create(table, request.body)
    if method == 'GET':
        return _parse_read(table, resource_id, _query_options(request.query))
    if method == 'PUT':
        return _parse_update(table, resource_id, request.body)
    if method == 'DELETE':
        return _parse_delete(table, resource_id, request.body)

    raise UnsupportedOperationError(f"Unsupported HTTP method: {request.method}", request.method)


def split_path(path: str) -> Tuple[str, Optional[str]]:
    """Return (table, resource_id) from `/table[/id]`."""
    parts = [part for part in (path or '').split('/') if part]
    if not parts:
        raise ValidationError("Request path must name a table", "path")
    resource_id = parts[1] if len(parts) > 1 else None
    return parts[0], resource_id


def id_equals(value: Any) -> Condition:
    return Condition(field=ID_FIELD, operator='=', value=value)


def _query_options(query: Any) -> QueryOptions:
    if isinstance(query, QueryOptions):
        return query
    return validate_query(query)


def _as_rows(body: Any) -> List[Row]:
    if body is None:
        return []
    if isinstance(body, Mapping):
        return [dict(body)] if body else []
    if isinstance(body, list):
        if not all(isinstance(row, Mapping) for row in body):
            raise ValidationError("Request body array must contain only objects", "structure")
        return [dict(row) for row in body]
    raise ValidationError("Request body must be an object or an array of objects", "structure")


def _parse_create(table: str, body: Any) -> CreateOperation:
    rows = _as_rows(body)
    if not rows:
        raise MissingValuesError("No values provided for insert")
    return CreateOperation(table=table, rows=rows)


def _parse_read(table: str, resource_id: Optional[str], options: QueryOptions) -> ReadOperation:
    where = options.where or []
    limit = options.limit
    # Path identity wins over query-string filters
    if resource_id is not None and resource_id != LIST_MARKER:
        where = [id_equals(resource_id)]
        limit = 1

    return ReadOperation(
        table=table,
        fields=options.select or ['*'],
        where=where,
        joins=options.joins or [],
        group_by=options.group_by or [],
        having=options.having or [],
        order_by=options.order_by or [],
        limit=limit,
        offset=options.offset,
    )


def _parse_update(table: str, resource_id: Optional[str], body: Any) -> UpdateOperation:
    if resource_id is not None:
        if not isinstance(body, Mapping) or not body:
            raise MissingValuesError("No values provided for update")
        return UpdateOperation(
            table=table,
            rows=[{**body, ID_FIELD: resource_id}],
            where=[id_equals(resource_id)],
        )

    rows = _as_rows(body)
    if not rows:
        raise MissingValuesError("No values provided for update")
    for index, row in enumerate(rows):
        _row_id(row, index, 'update')
    return UpdateOperation(table=table, rows=rows)


def _parse_delete(table: str, resource_id: Optional[str], body: Any) -> DeleteOperation:
    if resource_id is not None:
        return DeleteOperation(table=table, where=[id_equals(resource_id)])

    rows = _as_rows(body)
    if not rows:
        raise MissingValuesError("No ids provided for delete")
    where = []
    for index, row in enumerate(rows):
        where.append(id_equals(_row_id(row, index, 'delete')))
    return DeleteOperation(table=table, where=where)


def _row_id(row: Any, index: int, action: str) -> Any:
    """The id of one bulk row, a string or a number."""
    if not isinstance(row, Mapping) or ID_FIELD not in row:
        raise MissingValuesError(f"Row {index} has no {ID_FIELD} for bulk {action}")
    value = row[ID_FIELD]
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValidationError(f"Row {index} {ID_FIELD} must be a string or a number", "structure")
    return value
