"""Pydantic models for the restql query Intermediate Representation (IR)."""

from datetime import date, datetime
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union, get_args

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    Tag,
)


Operator = Literal[
    '=', '!=', '<>', '>', '>=', '<', '<=',
    'LIKE', 'NOT LIKE', 'IN', 'NOT IN',
    'IS NULL', 'IS NOT NULL', 'REGEXP', 'NOT REGEXP',
]
LogicalOperator = Literal['AND', 'OR']
JoinKind = Literal['INNER', 'LEFT', 'RIGHT', 'FULL']
Direction = Literal['ASC', 'DESC']
OperationKind = Literal['CREATE', 'READ', 'UPDATE', 'DELETE']

OPERATORS = get_args(Operator)
LOGICAL_OPERATORS = get_args(LogicalOperator)
JOIN_KINDS = get_args(JoinKind)

# Operators that take no right-hand operand
UNARY_OPERATORS = frozenset({'IS NULL', 'IS NOT NULL'})
# Operators whose operand is rendered inside parentheses
LIST_OPERATORS = frozenset({'IN', 'NOT IN'})

# datetime must come before date (datetime is a date subclass)
Scalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr, datetime, date, None]
Row = Dict[str, Any]


class Condition(BaseModel):
    """Leaf predicate: <field> <operator> <value>."""
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    tag: ClassVar[str] = 'condition'

    field: str
    operator: Operator = Field(validation_alias=AliasChoices('operator', 'op'))
    value: Scalar = None


class Group(BaseModel):
    """AND/OR group of predicates, optionally negated."""
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    tag: ClassVar[str] = 'group'

    logical_operator: LogicalOperator = Field(
        alias='operator',
        validation_alias=AliasChoices('operator', 'logicalOperator', 'logical_operator'),
    )
    children: List['Predicate'] = Field(
        alias='conditions',
        validation_alias=AliasChoices('conditions', 'children'),
    )
    negate: bool = Field(False, alias='not', validation_alias=AliasChoices('not', 'negate'))


def predicate_tag(value: Any) -> Optional[str]:
    """Pick the predicate variant for a raw mapping or a model instance."""
    if isinstance(value, dict):
        if 'field' in value:
            return Condition.tag
        if 'conditions' in value or 'children' in value:
            return Group.tag
        return None
    return getattr(value, 'tag', None)


Predicate = Annotated[
    Union[
        Annotated[Condition, Tag('condition')],
        Annotated[Group, Tag('group')],
    ],
    Discriminator(predicate_tag),
]

Group.model_rebuild()


class JoinSpec(BaseModel):
    """Represents a JOIN clause."""
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    kind: JoinKind = Field('INNER', alias='type', validation_alias=AliasChoices('type', 'kind'))
    table: str
    alias: Optional[str] = None
    on: List[Predicate]


class OrderBy(BaseModel):
    """Represents one ORDER BY entry."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    field: str
    direction: Direction = 'ASC'


class QueryOptions(BaseModel):
    """Validated query descriptor decoded from a request."""
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    select: Optional[List[str]] = None
    where: Optional[List[Predicate]] = None
    joins: Optional[List[JoinSpec]] = None
    group_by: Optional[List[str]] = Field(None, alias='groupBy')
    having: Optional[List[Predicate]] = None
    order_by: Optional[List[OrderBy]] = Field(None, alias='orderBy')
    limit: Optional[int] = None
    offset: Optional[int] = None


class CreateOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: Literal['CREATE'] = 'CREATE'
    table: str
    rows: List[Row]


class ReadOperation(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    operation: Literal['READ'] = 'READ'
    table: str
    fields: List[str] = ['*']
    where: List[Predicate] = []
    joins: List[JoinSpec] = []
    group_by: List[str] = Field([], alias='groupBy')
    having: List[Predicate] = []
    order_by: List[OrderBy] = Field([], alias='orderBy')
    limit: Optional[int] = None
    offset: Optional[int] = None


class UpdateOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: Literal['UPDATE'] = 'UPDATE'
    table: str
    rows: List[Row]
    where: List[Predicate] = []


class DeleteOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: Literal['DELETE'] = 'DELETE'
    table: str
    where: List[Predicate] = []


OperationDescriptor = Annotated[
    Union[CreateOperation, ReadOperation, UpdateOperation, DeleteOperation],
    Field(discriminator='operation'),
]


class RestRequest(BaseModel):
    """REST envelope handed over by a framework adapter."""
    method: str
    path: str
    query: Any = None  # raw mapping or validated QueryOptions
    body: Any = None


class CompiledQuery(BaseModel):
    """Parameterized SQL ready for an external executor."""
    sql: str
    params: List[Any] = []
