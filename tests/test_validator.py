"""Unit tests for query validation and sanitization."""

import copy
from datetime import date

import pytest
from restql import ValidationError, ValidationOptions, validate_query
from restql.ir_types import Condition, Group, JoinSpec, OrderBy, QueryOptions


def nested_groups(levels: int) -> dict:
    """`levels` nested AND groups around a single condition."""
    clause = {"field": "age", "operator": ">", "value": 18}
    for _ in range(levels):
        clause = {"operator": "AND", "conditions": [clause]}
    return clause


class TestBasicValidation:
    """Test well-formed queries."""

    def test_empty_query(self):
        """Test that an empty query is allowed"""
        assert validate_query({}) == QueryOptions()
        assert validate_query(None) == QueryOptions()

    def test_select_and_where(self):
        """Test a simple query round-trips into IR"""
        options = validate_query({
            "select": ["id", "name"],
            "where": {
                "operator": "AND",
                "conditions": [
                    {"field": "age", "operator": ">", "value": 18},
                    {"field": "status", "operator": "=", "value": "active"},
                ],
            },
        })
        assert options.select == ["id", "name"]
        assert len(options.where) == 1
        group = options.where[0]
        assert isinstance(group, Group)
        assert group.logical_operator == "AND"
        assert group.children[0] == Condition(field="age", operator=">", value=18)

    def test_bare_where_is_wrapped(self):
        """Test that a single predicate mapping becomes a one-element list"""
        options = validate_query({"where": {"field": "id", "operator": "=", "value": 1}})
        assert options.where == [Condition(field="id", operator="=", value=1)]

    def test_shorthand_group(self):
        """Test {"AND": [...]} and `op` spellings"""
        options = validate_query({
            "where": {"AND": [
                {"field": "age", "op": ">", "value": 18},
                {"OR": [
                    {"field": "city", "op": "=", "value": "Paris"},
                    {"field": "city", "op": "=", "value": "Lyon"},
                ]},
            ]},
        })
        outer = options.where[0]
        assert outer.logical_operator == "AND"
        assert outer.children[1].logical_operator == "OR"
        assert outer.children[1].children[1].value == "Lyon"

    def test_alternate_group_keys(self):
        """Test logicalOperator/children/negate spellings"""
        options = validate_query({
            "where": [{
                "logicalOperator": "or",
                "children": [{"field": "a", "operator": "=", "value": 1}],
                "negate": True,
            }],
        })
        group = options.where[0]
        assert group.logical_operator == "OR"
        assert group.negate is True

    def test_operator_normalized(self):
        """Test operators are upper-cased with single spaces"""
        options = validate_query({"where": {"field": "deleted_at", "operator": "is  not null"}})
        assert options.where[0].operator == "IS NOT NULL"
        assert options.where[0].value is None

    def test_order_by_direction(self):
        """Test direction defaults to ASC and is case-insensitive"""
        options = validate_query({
            "orderBy": [{"field": "created_at", "direction": "desc"}, {"field": "name"}],
        })
        assert options.order_by == [
            OrderBy(field="created_at", direction="DESC"),
            OrderBy(field="name", direction="ASC"),
        ]

    def test_joins(self):
        """Test join kind defaults and normalization"""
        options = validate_query({
            "joins": [
                {"type": "left", "table": "orders", "alias": "o",
                 "on": [{"field": "users.id", "operator": "=", "value": "o.user_id"}]},
                {"table": "profiles", "on": {"field": "profiles.user_id", "operator": "=", "value": "users.id"}},
            ],
        })
        assert options.joins[0].kind == "LEFT"
        assert options.joins[0].alias == "o"
        assert options.joins[1].kind == "INNER"
        assert isinstance(options.joins[1], JoinSpec)

    def test_date_values_allowed(self):
        """Test dates and hyphenated strings are valid values"""
        options = validate_query({
            "where": [
                {"field": "created_at", "operator": ">=", "value": date(2024, 1, 1)},
                {"field": "day", "operator": "=", "value": "2024-01-01"},
                {"field": "balance", "operator": "<", "value": -5},
            ],
        })
        assert options.where[0].value == date(2024, 1, 1)
        assert options.where[1].value == "2024-01-01"

    def test_pagination(self):
        """Test limit and offset"""
        options = validate_query({"limit": 10, "offset": 0})
        assert options.limit == 10
        assert options.offset == 0

    def test_integral_float_limit(self):
        """Test that 10.0 from JSON is accepted as 10"""
        assert validate_query({"limit": 10.0}).limit == 10


class TestIdempotency:
    """Test validate(validate(x)) == validate(x)."""

    def test_revalidating_is_idempotent(self):
        """Test a query with every clause"""
        raw = {
            "select": ["id", "name", "orders.total"],
            "where": {"AND": [
                {"field": "age", "op": ">", "value": 18},
                {"operator": "OR", "not": True, "conditions": [
                    {"field": "status", "operator": "=", "value": "banned"},
                    {"field": "deleted_at", "operator": "IS NOT NULL"},
                ]},
            ]},
            "joins": [{"type": "LEFT", "table": "orders", "alias": "o",
                       "on": [{"field": "users.id", "operator": "=", "value": "o.user_id"}]}],
            "groupBy": ["department"],
            "having": [{"field": "total", "operator": ">", "value": 5}],
            "orderBy": [{"field": "name", "direction": "asc"}],
            "limit": 20,
            "offset": 40,
        }
        once = validate_query(raw)
        twice = validate_query(once)
        assert once == twice

    def test_input_not_mutated(self):
        """Test the raw mapping is left untouched"""
        raw = {"where": {"AND": [{"field": "a", "op": "=", "value": 1}]}, "orderBy": [{"field": "a"}]}
        snapshot = copy.deepcopy(raw)
        validate_query(raw)
        assert raw == snapshot


class TestStructuralLimits:
    """Test depth, count and allow-list limits."""

    def test_depth_within_limit(self):
        """Test depth equal to the maximum is accepted"""
        validate_query({"where": nested_groups(2)}, ValidationOptions(max_query_depth=2))

    def test_depth_exceeded(self):
        """Test one level too deep is rejected"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"where": nested_groups(3)}, ValidationOptions(max_query_depth=2))
        assert exc_info.value.kind == "depth"

    def test_too_many_conditions(self):
        """Test group child count cap"""
        conditions = [{"field": f"f{i}", "operator": "=", "value": i} for i in range(3)]
        with pytest.raises(ValidationError) as exc_info:
            validate_query(
                {"where": {"operator": "AND", "conditions": conditions}},
                ValidationOptions(max_conditions_per_group=2),
            )
        assert exc_info.value.kind == "too_many_conditions"

    def test_empty_group(self):
        """Test a group needs at least one condition"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"where": {"operator": "AND", "conditions": []}})
        assert exc_info.value.kind == "structure"

    def test_logical_operator_not_allowed(self):
        """Test allowed_logical_operators"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query(
                {"where": {"OR": [{"field": "a", "operator": "=", "value": 1}]}},
                ValidationOptions(allowed_logical_operators={"AND"}),
            )
        assert exc_info.value.kind == "logical_operator"

    def test_operator_not_allowed(self):
        """Test allowed_operators"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query(
                {"where": {"field": "age", "operator": ">", "value": 1}},
                ValidationOptions(allowed_operators={"="}),
            )
        assert exc_info.value.kind == "operator"

    def test_unknown_operator(self):
        """Test operators outside the enum"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"where": {"field": "age", "operator": "===", "value": 1}})
        assert exc_info.value.kind == "operator"

    def test_too_many_select_fields(self):
        """Test select cap"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"select": ["a", "b", "c"]}, ValidationOptions(max_select_fields=2))
        assert exc_info.value.kind == "too_many_fields"

    def test_too_many_group_by_fields(self):
        """Test groupBy cap"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"groupBy": ["a", "b"]}, ValidationOptions(max_group_by_fields=1))
        assert exc_info.value.kind == "too_many_fields"

    def test_custom_field_pattern(self):
        """Test allowed_field_pattern given as a string"""
        options = ValidationOptions(allowed_field_pattern=r"^[a-z_]+$")
        validate_query({"where": {"field": "age", "operator": "=", "value": 1}}, options)
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"where": {"field": "Age", "operator": "=", "value": 1}}, options)
        assert exc_info.value.kind == "field"

    def test_value_length(self):
        """Test max_value_length on stringified values"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query(
                {"where": {"field": "code", "operator": "=", "value": 1234567}},
                ValidationOptions(max_value_length=5),
            )
        assert exc_info.value.kind == "value_length"


class TestStructureErrors:
    """Test malformed input shapes."""

    def test_query_not_object(self):
        """Test non-mapping query"""
        with pytest.raises(ValidationError):
            validate_query(["select"])

    def test_unknown_query_key(self):
        """Test keys outside the query options"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"select": ["id"], "drop": True})
        assert exc_info.value.kind == "structure"

    def test_malformed_predicate(self):
        """Test a mapping that is neither a condition nor a group"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"where": {"column": "a", "value": 1}})
        assert exc_info.value.kind == "structure"

    def test_unexpected_condition_key(self):
        """Test extra keys on a condition"""
        with pytest.raises(ValidationError):
            validate_query({"where": {"field": "a", "operator": "=", "value": 1, "raw": "1=1"}})

    def test_negate_must_be_bool(self):
        """Test the not flag type"""
        with pytest.raises(ValidationError):
            validate_query({"where": {"operator": "AND", "not": "yes",
                                      "conditions": [{"field": "a", "operator": "=", "value": 1}]}})

    @pytest.mark.parametrize("value", [{"a": 1}, [1, 2], (1,), object()])
    def test_complex_values(self, value):
        """Test that only scalars are accepted as values"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"where": {"field": "id", "operator": "=", "value": value}})
        assert exc_info.value.kind == "value_type"

    @pytest.mark.parametrize("condition", [
        {"field": "age", "operator": ">"},
        {"field": "name", "operator": "=", "value": None},
        {"field": "id", "operator": "IN"},
    ])
    def test_binary_operator_needs_value(self, condition):
        """Test comparisons without an operand"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"where": condition})
        assert exc_info.value.kind == "value_type"

    @pytest.mark.parametrize("operator", ["IS NULL", "IS NOT NULL"])
    def test_null_check_drops_value(self, operator):
        """Test a value sent with IS NULL is discarded"""
        options = validate_query({"where": {"field": "deleted_at", "operator": operator, "value": 5}})
        assert options.where == [Condition(field="deleted_at", operator=operator)]
        assert options.where[0].value is None

    @pytest.mark.parametrize("limit", [0, -1, "10", True, 1.5])
    def test_invalid_limit(self, limit):
        """Test limit must be a positive integer"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"limit": limit})
        assert exc_info.value.kind == "limit"

    @pytest.mark.parametrize("offset", [-1, "0", False])
    def test_invalid_offset(self, offset):
        """Test offset must be a non-negative integer"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"offset": offset})
        assert exc_info.value.kind == "offset"

    def test_invalid_direction(self):
        """Test unknown sort direction"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"orderBy": [{"field": "name", "direction": "sideways"}]})
        assert exc_info.value.kind == "order_by"

    def test_join_without_on(self):
        """Test a join needs ON conditions"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"joins": [{"type": "INNER", "table": "orders", "on": []}]})
        assert exc_info.value.kind == "join"

    def test_invalid_join_type(self):
        """Test join kinds outside INNER/LEFT/RIGHT/FULL"""
        with pytest.raises(ValidationError) as exc_info:
            validate_query({"joins": [{"type": "CROSS", "table": "orders",
                                       "on": [{"field": "a", "operator": "=", "value": "b.c"}]}]})
        assert exc_info.value.kind == "join"
