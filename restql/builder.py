"""
Fluent builder for query descriptors.

Assembles the same wire-format mapping a client would send and encodes it
for the `q` query-string parameter. Open WHERE groups live on a stack, so
groups can be nested with begin_where_group()/end_where_group() pairs.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from .codec import encode_query
from .ir_types import QueryOptions
from .validator import ValidationOptions, validate_query

PredicateInput = Union[Mapping[str, Any], BaseModel]


def _wire(predicate: PredicateInput) -> Dict[str, Any]:
    if isinstance(predicate, BaseModel):
        return predicate.model_dump(mode='json', by_alias=True, exclude_none=True)
    return dict(predicate)


class QueryBuilder:
    """Chainable helper that produces a query descriptor."""

    def __init__(self):
        self._select: List[str] = ['*']
        self._where: List[Dict[str, Any]] = []
        self._group_stack: List[Dict[str, Any]] = []
        self._joins: List[Dict[str, Any]] = []
        self._open_join: Optional[Dict[str, Any]] = None
        self._group_by: List[str] = []
        self._having: List[Dict[str, Any]] = []
        self._order_by: List[Dict[str, str]] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    def select_fields(self, fields: Sequence[str]) -> 'QueryBuilder':
        """query.select_fields(["id", "name", "email"])"""
        self._select = list(fields)
        return self

    def _where_target(self) -> List[Dict[str, Any]]:
        if self._group_stack:
            return self._group_stack[-1]['conditions']
        return self._where

    def where(self, field: str, operator: str, value: Any = None) -> 'QueryBuilder':
        """Add a condition to the innermost open group, or to the top level."""
        self._where_target().append({'field': field, 'operator': operator, 'value': value})
        return self

    def where_group(
        self, operator: str, conditions: Sequence[PredicateInput], negate: bool = False
    ) -> 'QueryBuilder':
        """
        Add a complete AND/OR group.

        query.where_group("OR", [
            {"field": "status", "operator": "=", "value": "active"},
            {"operator": "AND", "conditions": [...]},
        ])
        """
        group: Dict[str, Any] = {
            'operator': operator,
            'conditions': [_wire(condition) for condition in conditions],
        }
        if negate:
            group['not'] = True
        self._where_target().append(group)
        return self

    def not_where_group(self, operator: str, conditions: Sequence[PredicateInput]) -> 'QueryBuilder':
        return self.where_group(operator, conditions, negate=True)

    def begin_where_group(self, operator: str, negate: bool = False) -> 'QueryBuilder':
        """
        Open a group; following where() calls land in it until end_where_group().

        query.begin_where_group("AND")
            .where("status", "=", "active")
            .begin_where_group("OR")
                .where("age", ">", 18)
                .where("vip", "=", True)
            .end_where_group()
        .end_where_group()
        """
        group: Dict[str, Any] = {'operator': operator, 'conditions': []}
        if negate:
            group['not'] = True
        self._group_stack.append(group)
        return self

    def end_where_group(self) -> 'QueryBuilder':
        if not self._group_stack:
            raise ValueError("No active WHERE group to end")
        if not self._group_stack[-1]['conditions']:
            raise ValueError("WHERE group must have at least one condition")
        group = self._group_stack.pop()
        self._where_target().append(group)
        return self

    def start_join(self, kind: str, table: str, alias: Optional[str] = None) -> 'QueryBuilder':
        """query.start_join("LEFT", "orders", "o")"""
        if self._open_join is not None:
            raise ValueError("End the current join before starting another")
        join: Dict[str, Any] = {'type': kind, 'table': table, 'on': []}
        if alias:
            join['alias'] = alias
        self._joins.append(join)
        self._open_join = join
        return self

    def on(self, field: str, operator: str, value: Any) -> 'QueryBuilder':
        """Add an ON condition; a dotted string value compares two columns."""
        if self._open_join is None:
            raise ValueError("Must call start_join before adding join conditions")
        self._open_join['on'].append({'field': field, 'operator': operator, 'value': value})
        return self

    def on_equals(self, left_field: str, right_field: str) -> 'QueryBuilder':
        """query.start_join("LEFT", "orders", "o").on_equals("users.id", "o.user_id")"""
        return self.on(left_field, '=', right_field)

    def end_join(self) -> 'QueryBuilder':
        if self._open_join is None:
            raise ValueError("No active join to end")
        if not self._open_join['on']:
            raise ValueError("Join must have at least one ON condition")
        self._open_join = None
        return self

    def join(self, kind: str, table: str, left_field: str, operator: str, right_field: str) -> 'QueryBuilder':
        """query.join("LEFT", "orders", "users.id", "=", "orders.user_id")"""
        return self.start_join(kind, table).on(left_field, operator, right_field).end_join()

    def group_by(self, fields: Sequence[str]) -> 'QueryBuilder':
        self._group_by = list(fields)
        return self

    def having(self, field: str, operator: str, value: Any) -> 'QueryBuilder':
        self._having.append({'field': field, 'operator': operator, 'value': value})
        return self

    def order_by(self, field: str, direction: str = 'ASC') -> 'QueryBuilder':
        self._order_by.append({'field': field, 'direction': direction})
        return self

    def limit(self, value: int) -> 'QueryBuilder':
        self._limit = value
        return self

    def offset(self, value: int) -> 'QueryBuilder':
        self._offset = value
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Wire-format mapping of the query."""
        if self._group_stack:
            raise ValueError(f"{len(self._group_stack)} WHERE group(s) still open")
        if self._open_join is not None and not self._open_join['on']:
            raise ValueError("Join must have at least one ON condition")

        query: Dict[str, Any] = {}
        if self._select:
            query['select'] = list(self._select)
        if len(self._where) == 1:
            query['where'] = self._where[0]
        elif self._where:
            query['where'] = {'operator': 'AND', 'conditions': list(self._where)}
        if self._joins:
            query['joins'] = list(self._joins)
        if self._group_by:
            query['groupBy'] = list(self._group_by)
        if self._having:
            query['having'] = list(self._having)
        if self._order_by:
            query['orderBy'] = list(self._order_by)
        if self._limit is not None:
            query['limit'] = self._limit
        if self._offset is not None:
            query['offset'] = self._offset
        return query

    def to_options(self, options: Optional[ValidationOptions] = None) -> QueryOptions:
        """Validated QueryOptions for this query."""
        return validate_query(self.to_dict(), options)

    def build(self) -> str:
        """Base64 encoded query string for the `q` parameter."""
        return encode_query(self.to_dict())
