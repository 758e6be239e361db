"""Tests for data-flow transform nodes."""

from moodboard.data.transforms import evaluate_expression, parse_date, process_transform_node


ORDERS = [
    {"id": 1, "region": "EU", "amount": "120", "created": "2024-01-15"},
    {"id": 2, "region": "EU", "amount": 80, "created": "2024-01-20"},
    {"id": 3, "region": "US", "amount": 200, "created": "02/03/2024"},
]


def test_empty_input():
    assert process_transform_node("filter", {"column": "id", "operator": "=", "value": 1}, []) == []
    assert process_transform_node("filter", {}, None) == []


def test_unknown_node_passes_rows_through():
    assert process_transform_node("sparkle", {}, ORDERS) == ORDERS


def test_filter_numeric_and_text():
    assert [r["id"] for r in process_transform_node("filter", {"column": "amount", "operator": ">", "value": "100"}, ORDERS)] == [1, 3]
    assert [r["id"] for r in process_transform_node("filter", {"column": "region", "operator": "contains", "value": "u"}, ORDERS)] == [1, 2, 3]
    assert [r["id"] for r in process_transform_node("filter", {"column": "amount", "operator": "=", "value": "80"}, ORDERS)] == [2]


def test_filter_without_value_is_noop():
    assert process_transform_node("filter", {"column": "amount", "operator": ">"}, ORDERS) == ORDERS


def test_select():
    assert process_transform_node("select", {"columns": "id, region"}, ORDERS)[0] == {"id": 1, "region": "EU"}


def test_aggregate():
    result = process_transform_node(
        "aggregate",
        {"groupBy": "region", "aggregations": "SUM(amount) as total, COUNT(*)"},
        ORDERS,
    )
    assert result == [
        {"region": "EU", "total": 200.0, "count_*": 2},
        {"region": "US", "total": 200.0, "count_*": 1},
    ]


def test_joins():
    regions = [{"code": "EU", "name": "Europe"}, {"code": "APAC", "name": "Asia"}]
    config = {"leftKey": "region", "rightKey": "code"}

    inner = process_transform_node("join", {**config, "joinType": "INNER"}, ORDERS, regions)
    assert [r["id"] for r in inner] == [1, 2]
    assert inner[0]["name"] == "Europe"

    left = process_transform_node("join", {**config, "joinType": "LEFT"}, ORDERS, regions)
    assert len(left) == 3

    full = process_transform_node("join", {**config, "joinType": "FULL"}, ORDERS, regions)
    assert full[-1] == {"code": "APAC", "name": "Asia"}


def test_two_input_node_without_secondary():
    assert process_transform_node("join", {"leftKey": "a", "rightKey": "b"}, ORDERS) == ORDERS


def test_union_deduplicates():
    assert len(process_transform_node("union", {"type": "UNION"}, ORDERS, ORDERS[:1])) == 3
    assert len(process_transform_node("union", {"type": "UNION ALL"}, ORDERS, ORDERS[:1])) == 4


def test_pivot():
    rows = [
        {"month": "Jan", "region": "EU", "sales": 1},
        {"month": "Jan", "region": "US", "sales": 2},
        {"month": "Feb", "region": "EU", "sales": 3},
    ]
    result = process_transform_node("pivot", {"rows": "month", "columns": "region", "values": "sales"}, rows)
    assert result == [{"month": "Jan", "EU": 1.0, "US": 2.0}, {"month": "Feb", "EU": 3.0, "US": 0}]


def test_merge():
    first, second = [{"a": 1}, {"a": 2}], [{"b": 1}]
    assert process_transform_node("merge", {}, first, second) == [{"a": 1, "b": 1}, {"a": 2}]
    assert len(process_transform_node("merge", {"mergeType": "outer"}, second, first)) == 2


def test_extract_month_and_cohort():
    months = process_transform_node("extractMonth", {"dateColumn": "created"}, ORDERS)
    assert [r["month"] for r in months] == ["2024-01", "2024-01", "2024-02"]

    cohorts = process_transform_node("cohort", {"dateColumn": "created", "metricColumn": "orders"}, ORDERS)
    assert cohorts == [{"cohort_month": "2024-01", "orders": 2}, {"cohort_month": "2024-02", "orders": 1}]


def test_calculate():
    rows = [{"price": 10, "qty": 3}, {"price": 5, "qty": 0}]
    result = process_transform_node("calculate", {"total": "price * qty", "unit": "total / qty"}, rows)
    assert result[0]["total"] == 30.0
    # "total" is not an input column, so it reads as zero
    assert result[0]["unit"] == 0.0
    assert result[1]["unit"] is None
    assert "total" not in rows[0]


def test_expression_rejects_anything_but_arithmetic():
    assert evaluate_expression("__import__('os').getcwd()", {}) is None
    assert evaluate_expression("price ** 2", {"price": 3}) is None
    assert evaluate_expression("-(a + 2) % 5", {"a": 1}) == 2.0
    assert evaluate_expression("missing + 1", {"missing": "x"}) == 1.0


def test_parse_date():
    assert parse_date("2024-03-01T10:00:00Z").month == 3
    assert parse_date("Mar 05, 2024").day == 5
    assert parse_date(0).year == 1970
    assert parse_date("not a date") is None
    assert parse_date(True) is None
