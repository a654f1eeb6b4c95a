"""
SQL Generator - compiles operation descriptors into parameterized SQL.

Input is assumed to be validated already; nothing here re-validates or
executes. Predicate compilation returns Fragment(sql, params) values and the
running placeholder offset travels through arguments and return values, so a
generator can be shared between concurrent requests.
"""

import logging
import re
from typing import Any, List, Optional, Sequence, Union

from .dialects import Dialect, Fragment, get_dialect
from .errors import MissingValuesError, UnsupportedOperationError
from .ir_types import (
    LIST_OPERATORS,
    UNARY_OPERATORS,
    CompiledQuery,
    Condition,
    CreateOperation,
    DeleteOperation,
    Group,
    ReadOperation,
    UpdateOperation,
)

logger = logging.getLogger(__name__)

ID_COLUMN = 'id'
COLUMN_REFERENCE_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*(?:\.[a-zA-Z_][a-zA-Z0-9_]*)+$')


def is_column_reference(value: Any) -> bool:
    """A dotted identifier string such as `users.id`."""
    return isinstance(value, str) and bool(COLUMN_REFERENCE_PATTERN.match(value))


class SQLGenerator:
    """Compiles operation descriptors for one dialect and optional schema."""

    def __init__(self, dialect: Union[str, Dialect], schema_name: Optional[str] = None):
        self.dialect = get_dialect(dialect)
        self.schema_name = schema_name

    def compile(self, op) -> CompiledQuery:
        """Dispatch on the operation type and compile it."""
        handlers = {
            CreateOperation: self.compile_insert,
            ReadOperation: self.compile_select,
            UpdateOperation: self.compile_update,
            DeleteOperation: self.compile_delete,
        }
        handler = handlers.get(type(op))
        if handler is None:
            operation = getattr(op, 'operation', type(op).__name__)
            raise UnsupportedOperationError(f"Unsupported operation: {operation}", operation)

        compiled = handler(op)
        logger.debug(f"[compiler] {self.dialect.name} {op.operation}: {compiled.sql}")
        return compiled

    # Identifiers

    def escape(self, identifier: str) -> str:
        return self.dialect.escape_identifier(identifier)

    def table_name(self, table: str) -> str:
        escaped = self.escape(table)
        if self.schema_name:
            return f"{self.escape(self.schema_name)}.{escaped}"
        return escaped

    # Predicates

    def compile_predicate(
        self,
        predicate,
        offset: int = 0,
        parent_operator: Optional[str] = None,
        in_join: bool = False,
    ) -> Fragment:
        """
        Compile a Condition or Group.

        Args:
            predicate: Condition or Group
            offset: Number of parameters bound before this fragment
            parent_operator: Logical operator of the enclosing group, if any
            in_join: True inside a JOIN's ON list (dotted values are columns)

        Returns:
            Fragment whose params are ordered like its placeholders
        """
        if isinstance(predicate, Condition):
            return self._compile_condition(predicate, offset, in_join)
        if isinstance(predicate, Group):
            return self._compile_group(predicate, offset, parent_operator, in_join)
        raise TypeError(f"Not a predicate: {type(predicate).__name__}")

    def compile_predicates(self, predicates: Sequence, offset: int = 0, in_join: bool = False) -> Fragment:
        """Compile a top-level predicate list joined with AND."""
        parts: List[str] = []
        params: List[Any] = []
        for predicate in predicates:
            fragment = self.compile_predicate(predicate, offset + len(params), in_join=in_join)
            parts.append(fragment.sql)
            params.extend(fragment.params)
        return Fragment(" AND ".join(parts), params)

    def _compile_condition(self, condition: Condition, offset: int, in_join: bool) -> Fragment:
        column = self.escape(condition.field)
        operator = condition.operator

        if operator in UNARY_OPERATORS:
            return Fragment(f"{column} {operator}", [])

        if in_join and is_column_reference(condition.value):
            # Equi-join on another column, nothing to bind
            return Fragment(f"{column} {operator} {self.escape(condition.value)}", [])

        marker = self.dialect.placeholder(offset + 1)
        if operator in LIST_OPERATORS:
            marker = f"({marker})"
        return Fragment(f"{column} {operator} {marker}", [condition.value])

    def _compile_group(
        self, group: Group, offset: int, parent_operator: Optional[str], in_join: bool
    ) -> Fragment:
        operator = group.logical_operator
        parts: List[str] = []
        params: List[Any] = []
        for child in group.children:
            fragment = self.compile_predicate(child, offset + len(params), operator, in_join)
            parts.append(fragment.sql)
            params.extend(fragment.params)

        sql = f" {operator} ".join(parts)
        needs_parentheses = (
            operator == 'OR'
            or group.negate
            or (operator == 'AND' and parent_operator == 'OR')
        )
        if needs_parentheses:
            sql = f"({sql})"
        if group.negate:
            sql = f"NOT {sql}"
        return Fragment(sql, params)

    # Statements

    def compile_select(self, op: ReadOperation) -> CompiledQuery:
        fields = ", ".join(self.escape(field) for field in (op.fields or ['*']))
        parts = [f"SELECT {fields} FROM {self.table_name(op.table)}"]
        params: List[Any] = []

        for join in op.joins:
            on = self.compile_predicates(join.on, len(params), in_join=True)
            params.extend(on.params)
            alias = f" AS {self.escape(join.alias)}" if join.alias else ""
            parts.append(f"{join.kind} JOIN {self.table_name(join.table)}{alias} ON {on.sql}")

        if op.where:
            where = self.compile_predicates(op.where, len(params))
            parts.append(f"WHERE {where.sql}")
            params.extend(where.params)

        if op.group_by:
            parts.append("GROUP BY " + ", ".join(self.escape(field) for field in op.group_by))

        if op.having:
            having = self.compile_predicates(op.having, len(params))
            parts.append(f"HAVING {having.sql}")
            params.extend(having.params)

        if op.order_by:
            orders = ", ".join(f"{self.escape(order.field)} {order.direction}" for order in op.order_by)
            parts.append(f"ORDER BY {orders}")

        # Validated integers, safe to inline
        if op.limit is not None:
            parts.append(f"LIMIT {int(op.limit)}")
        if op.offset is not None:
            parts.append(f"OFFSET {int(op.offset)}")

        return CompiledQuery(sql=" ".join(parts), params=params)

    def compile_insert(self, op: CreateOperation) -> CompiledQuery:
        if not op.rows:
            raise MissingValuesError("No values provided for insert")

        # Rows are assumed homogeneous; the first row fixes the column list
        columns = list(op.rows[0].keys())
        if not columns:
            raise MissingValuesError("No fields provided for insert")

        tuples: List[str] = []
        params: List[Any] = []
        for row in op.rows:
            markers = ", ".join(
                self.dialect.placeholder(len(params) + i + 1) for i in range(len(columns))
            )
            tuples.append(f"({markers})")
            params.extend(row.get(column) for column in columns)

        escaped = ", ".join(self.escape(column) for column in columns)
        sql = f"INSERT INTO {self.table_name(op.table)} ({escaped}) VALUES {', '.join(tuples)}"
        return CompiledQuery(sql=sql, params=params)

    def compile_update(self, op: UpdateOperation) -> CompiledQuery:
        if not op.rows:
            raise MissingValuesError("No values provided for update")
        if len(op.rows) == 1:
            return self._compile_single_update(op)
        return self._compile_bulk_update(op)

    def _compile_single_update(self, op: UpdateOperation) -> CompiledQuery:
        row = op.rows[0]
        assignments: List[str] = []
        params: List[Any] = []
        for column, value in row.items():
            if column == ID_COLUMN:
                continue
            params.append(value)
            assignments.append(f"{self.escape(column)} = {self.dialect.placeholder(len(params))}")

        if not assignments:
            raise MissingValuesError("No fields provided for update")

        sql = f"UPDATE {self.table_name(op.table)} SET {', '.join(assignments)}"

        where = list(op.where)
        if not where and ID_COLUMN in row:
            where = [Condition(field=ID_COLUMN, operator='=', value=row[ID_COLUMN])]
        if where:
            clause = self.compile_predicates(where, len(params))
            sql += f" WHERE {clause.sql}"
            params.extend(clause.params)

        return CompiledQuery(sql=sql, params=params)

    def _compile_bulk_update(self, op: UpdateOperation) -> CompiledQuery:
        columns = [column for column in op.rows[0] if column != ID_COLUMN]
        if not columns:
            raise MissingValuesError("No fields provided for update")

        id_column = self.escape(ID_COLUMN)
        assignments: List[str] = []
        params: List[Any] = []
        for column in columns:
            cases: List[str] = []
            for row in op.rows:
                if column not in row:
                    continue
                params.append(row.get(ID_COLUMN))
                id_marker = self.dialect.placeholder(len(params))
                params.append(row[column])
                value_marker = self.dialect.placeholder(len(params))
                cases.append(f"WHEN {id_column} = {id_marker} THEN {value_marker}")
            escaped = self.escape(column)
            assignments.append(f"{escaped} = CASE {' '.join(cases)} ELSE {escaped} END")

        id_markers: List[str] = []
        for row in op.rows:
            params.append(row.get(ID_COLUMN))
            id_markers.append(self.dialect.placeholder(len(params)))

        sql = (
            f"UPDATE {self.table_name(op.table)} SET {', '.join(assignments)} "
            f"WHERE {id_column} IN ({', '.join(id_markers)})"
        )
        return CompiledQuery(sql=sql, params=params)

    def compile_delete(self, op: DeleteOperation) -> CompiledQuery:
        sql = f"DELETE FROM {self.table_name(op.table)}"
        if not op.where:
            return CompiledQuery(sql=sql, params=[])

        ids = bulk_delete_ids(op.where)
        if ids is not None:
            clause = self.dialect.bulk_id_match(ID_COLUMN, ids, 0)
        else:
            clause = self.compile_predicates(op.where)
        return CompiledQuery(sql=f"{sql} WHERE {clause.sql}", params=clause.params)


def bulk_delete_ids(where: Sequence) -> Optional[List[Any]]:
    """Ids of a bulk delete: more than one predicate, all `id = <value>`."""
    if len(where) < 2:
        return None
    ids = []
    for predicate in where:
        if not (
            isinstance(predicate, Condition)
            and predicate.field == ID_COLUMN
            and predicate.operator == '='
        ):
            return None
        ids.append(predicate.value)
    return ids


def compile_operation(op, dialect: Union[str, Dialect], schema_name: Optional[str] = None) -> CompiledQuery:
    """
    Compile an operation descriptor into parameterized SQL.

    Args:
        op: CreateOperation, ReadOperation, UpdateOperation or DeleteOperation
        dialect: Dialect name ('mysql', 'postgres', 'sqlite') or instance
        schema_name: Optional schema used to qualify table names

    Returns:
        CompiledQuery with params ordered like the placeholders in sql
    """
    return SQLGenerator(dialect, schema_name).compile(op)
