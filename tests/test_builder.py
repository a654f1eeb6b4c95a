"""Unit tests for the fluent QueryBuilder."""

import pytest
from restql import QueryBuilder, compile_operation, decode_query, parse_request
from restql.ir_types import Condition, Group, RestRequest


class TestQueryBuilder:
    """Test assembling query descriptors."""

    def test_defaults(self):
        """Test an empty builder selects everything"""
        assert QueryBuilder().to_dict() == {"select": ["*"]}

    def test_single_where_is_not_wrapped(self):
        """Test one top-level condition stays a bare condition"""
        query = QueryBuilder().select_fields(["id"]).where("age", ">", 18).to_dict()
        assert query["where"] == {"field": "age", "operator": ">", "value": 18}

    def test_several_where_fold_into_and(self):
        """Test several top-level conditions become one AND group"""
        query = QueryBuilder().where("age", ">", 18).where("status", "=", "active").to_dict()
        assert query["where"]["operator"] == "AND"
        assert len(query["where"]["conditions"]) == 2

    def test_nested_groups(self):
        """Test begin/end pairs nest"""
        query = (
            QueryBuilder()
            .begin_where_group("AND")
            .where("status", "=", "active")
            .begin_where_group("OR")
            .where("age", ">", 18)
            .where("vip", "=", True)
            .end_where_group()
            .end_where_group()
            .to_options()
        )
        group = query.where[0]
        assert group.logical_operator == "AND"
        assert group.children[0] == Condition(field="status", operator="=", value="active")
        inner = group.children[1]
        assert isinstance(inner, Group)
        assert inner.logical_operator == "OR"
        assert len(inner.children) == 2

    def test_where_group_accepts_models(self):
        """Test where_group with dicts and IR models"""
        query = QueryBuilder().not_where_group("OR", [
            {"field": "a", "operator": "=", "value": 1},
            Condition(field="b", operator="=", value=2),
        ]).to_options()
        group = query.where[0]
        assert group.negate is True
        assert group.children[1] == Condition(field="b", operator="=", value=2)

    def test_joins(self):
        """Test start_join/on/end_join and the join shortcut"""
        query = (
            QueryBuilder()
            .start_join("LEFT", "orders", "o")
            .on_equals("users.id", "o.user_id")
            .on("o.kind", "=", "gift")
            .end_join()
            .join("INNER", "profiles", "profiles.user_id", "=", "users.id")
            .to_options()
        )
        assert [join.table for join in query.joins] == ["orders", "profiles"]
        assert query.joins[0].alias == "o"
        assert len(query.joins[0].on) == 2

    def test_clauses(self):
        """Test groupBy, having, orderBy, limit and offset"""
        query = (
            QueryBuilder()
            .select_fields(["dept"])
            .group_by(["dept"])
            .having("total", ">", 5)
            .order_by("dept", "DESC")
            .limit(10)
            .offset(20)
            .to_dict()
        )
        assert query == {
            "select": ["dept"],
            "groupBy": ["dept"],
            "having": [{"field": "total", "operator": ">", "value": 5}],
            "orderBy": [{"field": "dept", "direction": "DESC"}],
            "limit": 10,
            "offset": 20,
        }

    def test_build_compiles(self):
        """Test the encoded query goes through the full pipeline"""
        encoded = QueryBuilder().select_fields(["id", "name"]).where("age", ">", 18).limit(5).build()
        op = parse_request(RestRequest(method="GET", path="/users", query=decode_query(encoded)))
        compiled = compile_operation(op, "sqlite")
        assert compiled.sql == 'SELECT "id", "name" FROM "users" WHERE "age" > ? LIMIT 5'
        assert compiled.params == [18]


class TestQueryBuilderErrors:
    """Test misuse of the open group and join cursors."""

    def test_end_without_group(self):
        """Test end_where_group with nothing open"""
        with pytest.raises(ValueError):
            QueryBuilder().end_where_group()

    def test_end_empty_group(self):
        """Test a group with no conditions"""
        with pytest.raises(ValueError):
            QueryBuilder().begin_where_group("OR").end_where_group()

    def test_unclosed_group(self):
        """Test to_dict with an open group"""
        with pytest.raises(ValueError, match="still open"):
            QueryBuilder().begin_where_group("AND").where("a", "=", 1).to_dict()

    def test_on_without_join(self):
        """Test on() needs start_join()"""
        with pytest.raises(ValueError):
            QueryBuilder().on("a.id", "=", "b.id")

    def test_second_open_join(self):
        """Test only one join is open at a time"""
        with pytest.raises(ValueError):
            QueryBuilder().start_join("LEFT", "a").start_join("LEFT", "b")

    def test_end_join_without_on(self):
        """Test a join needs ON conditions"""
        with pytest.raises(ValueError):
            QueryBuilder().start_join("LEFT", "orders").end_join()
