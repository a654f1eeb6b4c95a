"""
Validation and sanitization of untrusted query descriptors.

Walks a decoded JSON query (or an existing QueryOptions) and returns a new,
normalized QueryOptions. The first broken rule raises ValidationError with a
`kind` tag; nothing is accumulated and the input is never mutated.
"""

import logging
import re
from datetime import date
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Pattern

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .ir_types import (
    JOIN_KINDS,
    LOGICAL_OPERATORS,
    OPERATORS,
    UNARY_OPERATORS,
    Condition,
    Group,
    JoinSpec,
    LogicalOperator,
    Operator,
    OrderBy,
    QueryOptions,
    Row,
    predicate_tag,
)

logger = logging.getLogger(__name__)

MAX_QUERY_DEPTH = 5
MAX_CONDITIONS_PER_GROUP = 10
MAX_SELECT_FIELDS = 50
MAX_GROUP_BY_FIELDS = 10

SAFE_FIELD_PATTERN = re.compile(r'^(\*|[a-zA-Z][a-zA-Z0-9_]*(?:\.[a-zA-Z][a-zA-Z0-9_]*)*)$')
# Tables and aliases are never parameterized, so they get the stricter pattern
SAFE_TABLE_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9_]{0,63}$')
FORBIDDEN_VALUE_PATTERN = re.compile(r"['\"\\;]|--|/\*|\*/")

DANGEROUS_PATTERNS = [
    re.compile(r';\s*$'),                         # trailing semicolon
    re.compile(r'--'),                            # line comment
    re.compile(r'/\*'),                           # block comment start
    re.compile(r'\*/'),                           # block comment end
    re.compile(r"'\s*OR\s*'\d+'", re.IGNORECASE),  # ' OR '1'='1
    re.compile(r'UNION\s+SELECT', re.IGNORECASE),
    re.compile(r'SELECT\s+FROM', re.IGNORECASE),
    re.compile(r'DROP\s+TABLE', re.IGNORECASE),
    re.compile(r'DELETE\s+FROM', re.IGNORECASE),
    re.compile(r';\s*DROP', re.IGNORECASE),
    re.compile(r';\s*DELETE', re.IGNORECASE),
]

SQL_KEYWORDS = frozenset({
    'select', 'insert', 'update', 'delete', 'drop', 'truncate', 'alter',
    'create', 'database', 'table', 'union', 'join', 'exec', 'execute',
    'declare', 'cast', 'convert', 'into', 'values', 'where', 'from',
    'group', 'order', 'having', 'limit', 'offset', 'set',
})
SQL_KEYWORD_PATTERN = re.compile(
    r'\b(?:' + '|'.join(sorted(SQL_KEYWORDS)) + r')\b|\b(?:sp|xp)_',
    re.IGNORECASE,
)

QUERY_KEYS = frozenset({
    'select', 'where', 'joins', 'groupBy', 'group_by', 'having',
    'orderBy', 'order_by', 'limit', 'offset',
})
CONDITION_KEYS = frozenset({'field', 'operator', 'op', 'value'})
GROUP_KEYS = frozenset({
    'operator', 'logicalOperator', 'logical_operator', 'conditions', 'children', 'not', 'negate',
})
JOIN_KEYS = frozenset({'type', 'kind', 'table', 'alias', 'on'})
ORDER_BY_KEYS = frozenset({'field', 'direction'})


class ValidationOptions(BaseModel):
    """Limits and allow-lists applied while validating a query."""
    model_config = ConfigDict(frozen=True)

    max_query_depth: int = MAX_QUERY_DEPTH
    max_conditions_per_group: int = MAX_CONDITIONS_PER_GROUP
    max_select_fields: int = MAX_SELECT_FIELDS
    max_group_by_fields: int = MAX_GROUP_BY_FIELDS
    allowed_operators: FrozenSet[Operator] = frozenset(OPERATORS)
    allowed_logical_operators: FrozenSet[LogicalOperator] = frozenset(LOGICAL_OPERATORS)
    allowed_field_pattern: Pattern[str] = SAFE_FIELD_PATTERN
    max_value_length: Optional[int] = None
    prevent_sql_keywords: bool = False


# Strict preset used by the service
DEFAULT_VALIDATION_OPTIONS = ValidationOptions(
    max_query_depth=5,
    max_conditions_per_group=5,
    max_select_fields=20,
    max_group_by_fields=5,
    max_value_length=1000,
    prevent_sql_keywords=True,
)


def validate_query(raw: Any, options: Optional[ValidationOptions] = None) -> QueryOptions:
    """
    Validate an untrusted query descriptor and return a normalized QueryOptions.

    Args:
        raw: Decoded JSON mapping, an existing QueryOptions, or None
        options: Validation limits (defaults to ValidationOptions())

    Returns:
        New QueryOptions built from the validated input

    Raises:
        ValidationError: On the first rule the input breaks
    """
    options = options or ValidationOptions()

    if isinstance(raw, QueryOptions):
        raw = raw.model_dump(by_alias=True, exclude_none=True)
    if raw is None:
        raw = {}

    try:
        if not isinstance(raw, Mapping):
            raise ValidationError("Query must be an object", "structure")

        unknown = sorted(str(key) for key in raw if key not in QUERY_KEYS)
        if unknown:
            raise ValidationError(f"Invalid query options: {', '.join(unknown)}", "structure")

        select = _validate_field_list(raw.get('select'), options.max_select_fields, 'select')
        joins = _validate_joins(raw.get('joins'), options)
        where = _validate_predicates(raw.get('where'), options, 'where')
        group_by = _validate_field_list(
            _first_present(raw, 'groupBy', 'group_by'), options.max_group_by_fields, 'groupBy'
        )
        having = _validate_predicates(raw.get('having'), options, 'having')
        order_by = _validate_order_by(_first_present(raw, 'orderBy', 'order_by'), options)
        limit = _validate_limit(raw.get('limit'))
        offset = _validate_offset(raw.get('offset'))

        return QueryOptions(
            select=select,
            joins=joins,
            where=where,
            group_by=group_by,
            having=having,
            order_by=order_by,
            limit=limit,
            offset=offset,
        )
    except PydanticValidationError as e:
        logger.info(f"[validator] Rejected query (structure): {e}")
        raise ValidationError(f"Invalid query structure: {e.errors()[0]['msg']}", "structure") from e
    except ValidationError as e:
        logger.info(f"[validator] Rejected query ({e.kind}): {e}")
        raise


def validate_table_name(name: Any, context: str = "table") -> str:
    """Check a table, alias or schema identifier against SAFE_TABLE_PATTERN."""
    if not isinstance(name, str) or not SAFE_TABLE_PATTERN.fullmatch(name):
        raise ValidationError(
            f'Invalid {context} name "{name}". Must start with a letter and contain only '
            f'alphanumeric characters and underscores (max 64)',
            "table",
        )
    return name


def validate_rows(rows: Iterable[Any]) -> List[Row]:
    """Check that every row is a non-empty mapping keyed by safe column names."""
    validated = []
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping) or not row:
            raise ValidationError(f"Row {index} must be a non-empty object", "structure")
        for column in row:
            if not isinstance(column, str) or column == '*' or not SAFE_FIELD_PATTERN.fullmatch(column):
                raise ValidationError(f'Invalid column name "{column}" in row {index}', "field")
        validated.append(dict(row))
    return validated


def is_dangerous(text: str) -> bool:
    return any(pattern.search(text) for pattern in DANGEROUS_PATTERNS)


def _first_present(raw: Mapping, *keys: str) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def _validate_field_list(fields: Any, max_fields: int, context: str) -> Optional[List[str]]:
    """Validate select/groupBy entries: `*` or a dotted identifier with no SQL keywords."""
    if fields is None:
        return None
    if not isinstance(fields, list):
        raise ValidationError(f"{context} must be an array of strings", "structure")
    if len(fields) > max_fields:
        raise ValidationError(
            f"Too many {context} fields. Maximum allowed is {max_fields}", "too_many_fields"
        )

    validated = []
    for field in fields:
        if not isinstance(field, str):
            raise ValidationError(f"{context} must be an array of strings", "structure")
        if field == '*':
            validated.append(field)
            continue
        if is_dangerous(field):
            raise ValidationError(f'Invalid field name "{field}". Contains dangerous patterns', "field")
        if not SAFE_FIELD_PATTERN.fullmatch(field):
            raise ValidationError(
                f'Invalid field name "{field}". Must start with a letter and contain only '
                f'alphanumeric characters, underscores, and dots',
                "field",
            )
        if any(part.lower() in SQL_KEYWORDS for part in field.split('.')):
            raise ValidationError(f'Field name "{field}" contains SQL keywords', "field")
        validated.append(field)
    return validated


def _validate_predicates(raw: Any, options: ValidationOptions, context: str) -> Optional[list]:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        raw = [raw]
    if not isinstance(raw, list):
        raise ValidationError(f"Invalid {context} clause structure", "structure")
    return [_validate_predicate(clause, options, depth=0) for clause in raw]


def _validate_predicate(raw: Any, options: ValidationOptions, depth: int):
    if depth > options.max_query_depth:
        raise ValidationError(
            f"Query too complex. Maximum depth is {options.max_query_depth}", "depth"
        )
    if not isinstance(raw, Mapping):
        raise ValidationError("Predicate must be an object", "structure")

    shape = _canonical_predicate(raw)
    if 'field' in shape:
        return _validate_condition(shape, options)
    return _validate_group(shape, options, depth)


def _canonical_predicate(raw: Mapping) -> dict:
    """Map the accepted wire spellings of a predicate onto one set of keys."""
    shorthand = [key for key in raw if isinstance(key, str) and key.upper() in LOGICAL_OPERATORS]
    if shorthand and predicate_tag(dict(raw)) is None:
        extra = set(raw) - set(shorthand) - {'not', 'negate'}
        if len(shorthand) > 1 or extra:
            raise ValidationError("Predicate group shorthand takes a single AND/OR key", "structure")
        key = shorthand[0]
        return {
            'operator': key.upper(),
            'conditions': raw[key],
            'not': _first_present(raw, 'not', 'negate'),
        }

    tag = predicate_tag(dict(raw))
    if tag == Condition.tag:
        extra = set(raw) - CONDITION_KEYS
        if extra:
            raise ValidationError(f"Unexpected condition keys: {sorted(map(str, extra))}", "structure")
        return {
            'field': raw['field'],
            'operator': _first_present(raw, 'operator', 'op'),
            'value': raw.get('value'),
        }
    if tag == Group.tag:
        extra = set(raw) - GROUP_KEYS
        if extra:
            raise ValidationError(f"Unexpected group keys: {sorted(map(str, extra))}", "structure")
        return {
            'operator': _first_present(raw, 'operator', 'logicalOperator', 'logical_operator'),
            'conditions': _first_present(raw, 'conditions', 'children'),
            'not': _first_present(raw, 'not', 'negate'),
        }

    raise ValidationError(
        "Predicate must be a condition {field, operator, value} or a group {operator, conditions}",
        "structure",
    )


def _validate_group(shape: dict, options: ValidationOptions, depth: int) -> Group:
    operator = shape['operator']
    operator = operator.upper() if isinstance(operator, str) else operator
    if operator not in options.allowed_logical_operators:
        raise ValidationError(f'Logical operator "{shape["operator"]}" is not allowed', "logical_operator")

    children = shape['conditions']
    if not isinstance(children, list):
        raise ValidationError("Group conditions must be an array", "structure")
    if not children:
        raise ValidationError("Group must have at least one condition", "structure")
    if len(children) > options.max_conditions_per_group:
        raise ValidationError(
            f"Too many conditions in group. Maximum allowed is {options.max_conditions_per_group}",
            "too_many_conditions",
        )

    negate = shape['not']
    if negate is None:
        negate = False
    if not isinstance(negate, bool):
        raise ValidationError("Group negation flag must be a boolean", "structure")

    return Group(
        logical_operator=operator,
        children=[_validate_predicate(child, options, depth + 1) for child in children],
        negate=negate,
    )


def _validate_condition(shape: dict, options: ValidationOptions) -> Condition:
    field = shape['field']
    if (
        not isinstance(field, str)
        or field == '*'
        or not options.allowed_field_pattern.fullmatch(field)
        or is_dangerous(field)
    ):
        raise ValidationError(
            f'Invalid field name "{field}". Must start with a letter and contain only '
            f'alphanumeric characters, underscores, and dots',
            "field",
        )

    operator = shape['operator']
    if isinstance(operator, str):
        operator = ' '.join(operator.upper().split())
    if operator not in OPERATORS or operator not in options.allowed_operators:
        raise ValidationError(f'Operator "{shape["operator"]}" is not allowed', "operator")

    if operator in UNARY_OPERATORS:
        # IS NULL / IS NOT NULL take no operand
        return Condition(field=field, operator=operator)
    if shape['value'] is None:
        raise ValidationError(
            f'Operator "{operator}" requires a value; use IS NULL to match NULL', "value_type"
        )

    value = _validate_value(shape['value'], options)
    return Condition(field=field, operator=operator, value=value)


def _validate_value(value: Any, options: ValidationOptions) -> Any:
    if value is None:
        return None

    if isinstance(value, date):
        text = value.isoformat()
    elif isinstance(value, (bool, int, float, str)):
        text = str(value)
    else:
        raise ValidationError("Complex objects are not allowed as values", "value_type")

    if options.max_value_length and len(text) > options.max_value_length:
        raise ValidationError(
            f"Value exceeds maximum length of {options.max_value_length}", "value_length"
        )
    if is_dangerous(text):
        raise ValidationError("Value contains dangerous patterns", "dangerous_value")
    if FORBIDDEN_VALUE_PATTERN.search(text):
        raise ValidationError("Value contains forbidden characters", "forbidden_characters")
    if options.prevent_sql_keywords and SQL_KEYWORD_PATTERN.search(text):
        raise ValidationError("Value contains SQL keywords", "sql_keyword")

    return value


def _validate_joins(joins: Any, options: ValidationOptions) -> Optional[List[JoinSpec]]:
    if joins is None:
        return None
    if not isinstance(joins, list):
        raise ValidationError("Invalid joins structure", "structure")

    validated = []
    for join in joins:
        if not isinstance(join, Mapping):
            raise ValidationError("Invalid joins structure", "structure")
        extra = set(join) - JOIN_KEYS
        if extra:
            raise ValidationError(f"Unexpected join keys: {sorted(map(str, extra))}", "structure")

        kind = _first_present(join, 'type', 'kind') or 'INNER'
        kind = kind.upper() if isinstance(kind, str) else kind
        if kind not in JOIN_KINDS:
            raise ValidationError(f'Invalid join type "{kind}"', "join")

        table = validate_table_name(join.get('table'), "table")
        alias = join.get('alias')
        if alias is not None:
            alias = validate_table_name(alias, "alias")

        on = _validate_predicates(join.get('on'), options, 'join')
        if not on:
            raise ValidationError("Join must have at least one ON condition", "join")

        validated.append(JoinSpec(kind=kind, table=table, alias=alias, on=on))
    return validated


def _validate_order_by(order_by: Any, options: ValidationOptions) -> Optional[List[OrderBy]]:
    if order_by is None:
        return None
    if isinstance(order_by, Mapping):
        order_by = [order_by]
    if not isinstance(order_by, list):
        raise ValidationError("Invalid orderBy structure", "structure")

    validated = []
    for order in order_by:
        if not isinstance(order, Mapping) or set(order) - ORDER_BY_KEYS:
            raise ValidationError("Invalid orderBy structure", "structure")
        field = order.get('field')
        if (
            not isinstance(field, str)
            or field == '*'
            or not options.allowed_field_pattern.fullmatch(field)
            or is_dangerous(field)
        ):
            raise ValidationError(
                f'Invalid field name "{field}". Must contain only alphanumeric characters, '
                f'underscores, and dots',
                "order_by",
            )
        direction = order.get('direction') or 'ASC'
        direction = direction.upper() if isinstance(direction, str) else direction
        if direction not in ('ASC', 'DESC'):
            raise ValidationError(f'Invalid sort direction "{order.get("direction")}"', "order_by")
        validated.append(OrderBy(field=field, direction=direction))
    return validated


def _as_integer(value: Any) -> Optional[int]:
    # bool is an int subclass but never a valid row count
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _validate_limit(limit: Any) -> Optional[int]:
    if limit is None:
        return None
    value = _as_integer(limit)
    if value is None or value <= 0:
        raise ValidationError("Limit must be a positive integer", "limit")
    return value


def _validate_offset(offset: Any) -> Optional[int]:
    if offset is None:
        return None
    value = _as_integer(offset)
    if value is None or value < 0:
        raise ValidationError("Offset must be a non-negative integer", "offset")
    return value
