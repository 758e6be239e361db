"""Row-level transforms behind the data-flow canvas nodes.

Rows are lists of plain dicts. Every transform returns a new list and
leaves its input untouched; unknown node types pass rows through.
"""

import ast
import json
import math
import operator
import re
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from moodboard.canvas.binding import to_number

_AGGREGATION = re.compile(r"(SUM|AVG|COUNT|MIN|MAX)\(([^)]+)\)(?:\s+as\s+(\w+))?", re.IGNORECASE)
_DATE_FORMATS = ("%m/%d/%Y", "%Y/%m/%d", "%b %d, %Y", "%B %d, %Y", "%d %b %Y")


def _split_columns(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(col).strip() for col in value if str(col).strip()]
    return [col.strip() for col in str(value).split(",") if col.strip()]


def _loose_equal(left: Any, right: Any) -> bool:
    left_number, right_number = to_number(left), to_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    if left is None or right is None:
        return left is None and right is None
    return str(left) == str(right)


def _compare(op: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def check(cell: Any, value: Any) -> bool:
        cell_number, value_number = to_number(cell), to_number(value)
        if cell_number is None or value_number is None:
            return False
        return op(cell_number, value_number)
    return check


def _text(op: str) -> Callable[[Any, Any], bool]:
    def check(cell: Any, value: Any) -> bool:
        haystack, needle = str(cell).lower(), str(value).lower()
        return getattr(haystack, op)(needle) if op != "contains" else needle in haystack
    return check


FILTER_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "=": _loose_equal,
    "!=": lambda cell, value: not _loose_equal(cell, value),
    ">": _compare(operator.gt),
    "<": _compare(operator.lt),
    ">=": _compare(operator.ge),
    "<=": _compare(operator.le),
    "contains": _text("contains"),
    "starts with": _text("startswith"),
    "ends with": _text("endswith"),
}


def filter_rows(rows: list[dict], config: dict) -> list[dict]:
    column, op = config.get("column"), config.get("operator")
    if not column or not op or "value" not in config:
        return list(rows)
    check = FILTER_OPERATORS.get(op)
    if check is None:
        return list(rows)
    return [row for row in rows if check(row.get(column), config["value"])]


def select_columns(rows: list[dict], config: dict) -> list[dict]:
    if not config.get("columns"):
        return list(rows)
    columns = _split_columns(config["columns"])
    return [{col: row[col] for col in columns if col in row} for row in rows]


def _numeric_values(rows: list[dict], column: str) -> list[float]:
    return [to_number(row.get(column)) or 0.0 for row in rows]


def _reduce(func: str, values: list[float]) -> Optional[float]:
    if func == "COUNT":
        return len(values)
    if not values:
        return None
    if func == "SUM":
        return sum(values)
    if func == "AVG":
        return sum(values) / len(values)
    if func == "MIN":
        return min(values)
    if func == "MAX":
        return max(values)
    return None


def aggregate_rows(rows: list[dict], config: dict) -> list[dict]:
    """Group by ``groupBy`` columns and apply ``SUM(col) as alias, COUNT(*)`` style aggregations."""
    group_by, aggregations = config.get("groupBy"), config.get("aggregations")
    if not group_by and not aggregations:
        return list(rows)

    group_columns = _split_columns(group_by) if group_by else []
    groups: dict[tuple, list[dict]] = {}
    for row in rows:
        key = tuple(json.dumps(row.get(col), default=str) for col in group_columns)
        groups.setdefault(key, []).append(row)

    specs = []
    for part in str(aggregations or "").split(","):
        match = _AGGREGATION.search(part)
        if match:
            func, column, alias = match.group(1).upper(), match.group(2).strip(), match.group(3)
            specs.append((func, column, alias or f"{func.lower()}_{column}"))

    result = []
    for members in groups.values():
        aggregated = {col: members[0].get(col) for col in group_columns}
        for func, column, output in specs:
            values = members if func == "COUNT" else _numeric_values(members, column)
            aggregated[output] = _reduce(func, values)
        result.append(aggregated)
    return result


def join_rows(left: list[dict], right: list[dict], config: dict) -> list[dict]:
    """INNER, LEFT, RIGHT or FULL join on ``leftKey``/``rightKey``."""
    join_type = str(config.get("joinType") or "INNER").upper()
    left_key, right_key = config.get("leftKey"), config.get("rightKey")
    if not left_key or not right_key:
        return list(left)

    def matches(l_row: dict, r_row: dict) -> bool:
        return _loose_equal(l_row.get(left_key), r_row.get(right_key))

    result = []
    if join_type in ("INNER", "LEFT", "FULL"):
        for l_row in left:
            paired = [r_row for r_row in right if matches(l_row, r_row)]
            result.extend({**l_row, **r_row} for r_row in paired)
            if not paired and join_type in ("LEFT", "FULL"):
                result.append(dict(l_row))

    if join_type == "RIGHT":
        for r_row in right:
            paired = [l_row for l_row in left if matches(l_row, r_row)]
            result.extend({**l_row, **r_row} for l_row in paired)
            if not paired:
                result.append(dict(r_row))

    if join_type == "FULL":
        result.extend(dict(r_row) for r_row in right if not any(matches(l_row, r_row) for l_row in left))
    return result


def union_rows(first: list[dict], second: list[dict], config: dict) -> list[dict]:
    """UNION drops duplicate rows (last occurrence wins its slot); UNION ALL keeps them."""
    if str(config.get("type") or "UNION").upper() != "UNION":
        return [*first, *second]
    unique: dict[str, dict] = {}
    for row in [*first, *second]:
        unique[json.dumps(row, default=str)] = row
    return list(unique.values())


def pivot_rows(rows: list[dict], config: dict) -> list[dict]:
    row_field, column_field, value_field = config.get("rows"), config.get("columns"), config.get("values")
    if not row_field or not column_field or not value_field:
        return list(rows)
    aggregation = str(config.get("aggregation") or "SUM").upper()

    column_values = list(dict.fromkeys(str(row.get(column_field)) for row in rows))
    cells: dict[str, dict[str, list[float]]] = {}
    row_labels: dict[str, Any] = {}
    for row in rows:
        label = str(row.get(row_field))
        row_labels.setdefault(label, row.get(row_field))
        cells.setdefault(label, {}).setdefault(str(row.get(column_field)), []).append(to_number(row.get(value_field)) or 0.0)

    result = []
    for label, buckets in cells.items():
        pivoted = {row_field: row_labels[label]}
        for column in column_values:
            values = buckets.get(column, [])
            pivoted[column] = _reduce(aggregation, values) if values else 0
        result.append(pivoted)
    return result


def merge_rows(first: list[dict], second: list[dict], config: dict) -> list[dict]:
    """Positional merge; ``inner`` keeps the first input's length, ``outer`` the longer one."""
    if (config.get("mergeType") or "inner") == "inner":
        return [{**row, **(second[i] if i < len(second) else {})} for i, row in enumerate(first)]
    length = max(len(first), len(second))
    return [
        {**(first[i] if i < len(first) else {}), **(second[i] if i < len(second) else {})}
        for i in range(length)
    ]


def parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _month_key(value: datetime) -> str:
    return f"{value.year}-{value.month:02d}"


def extract_month(rows: list[dict], config: dict) -> list[dict]:
    date_column = config.get("dateColumn")
    if not date_column:
        return list(rows)
    output = config.get("outputColumn") or "month"
    result = []
    for row in rows:
        parsed = parse_date(row.get(date_column))
        result.append({**row, output: _month_key(parsed) if parsed else row.get(date_column)})
    return result


_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}
_UNARY_OPERATORS = {ast.UAdd: operator.pos, ast.USub: operator.neg}


class ExpressionError(ValueError):
    """Raised for expressions outside the supported arithmetic subset."""


def _evaluate(node: ast.AST, row: dict) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body, row)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return float(node.value)
    if isinstance(node, ast.Name):
        # Non-numeric or missing fields count as zero
        value = row.get(node.id)
        return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else 0.0
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        return _BINARY_OPERATORS[type(node.op)](_evaluate(node.left, row), _evaluate(node.right, row))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand, row))
    raise ExpressionError(f"Unsupported expression element: {type(node).__name__}")


def evaluate_expression(expression: str, row: dict) -> Optional[float]:
    """Evaluate ``+ - * / %`` arithmetic over a row's numeric fields.

    Returns None for invalid expressions, division by zero and non-finite results.
    """
    try:
        tree = ast.parse(expression, mode="eval")
        value = _evaluate(tree, row)
    except (SyntaxError, ExpressionError, ZeroDivisionError, OverflowError):
        return None
    return value if math.isfinite(value) else None


def calculate_columns(rows: list[dict], config: dict) -> list[dict]:
    """Add one column per ``{name: expression}`` entry, each evaluated against the input row."""
    if not config:
        return list(rows)
    result = []
    for row in rows:
        computed = dict(row)
        for column, expression in config.items():
            computed[column] = evaluate_expression(str(expression), row)
        result.append(computed)
    return result


def cohort_counts(rows: list[dict], config: dict) -> list[dict]:
    """Count rows per month of ``dateColumn``; rows without a parseable date are skipped."""
    metric_column = config.get("metricColumn")
    if not metric_column:
        return list(rows)
    date_column = config.get("dateColumn") or "date"
    counts: dict[str, int] = {}
    for row in rows:
        parsed = parse_date(row.get(date_column))
        if parsed is None:
            continue
        key = _month_key(parsed)
        counts[key] = counts.get(key, 0) + 1
    return [{"cohort_month": month, metric_column: count} for month, count in counts.items()]


SINGLE_INPUT = {
    "filter": filter_rows,
    "select": select_columns,
    "aggregate": aggregate_rows,
    "pivot": pivot_rows,
    "extractMonth": extract_month,
    "calculate": calculate_columns,
    "cohort": cohort_counts,
}
DUAL_INPUT = {
    "join": join_rows,
    "union": union_rows,
    "merge": merge_rows,
}


def process_transform_node(
    node_type: str,
    config: Optional[dict],
    rows: Optional[list[dict]],
    secondary: Optional[list[dict]] = None,
) -> list[dict]:
    """Apply the transform named ``node_type`` to ``rows``.

    Empty input yields an empty list. Two-input transforms return ``rows``
    unchanged when ``secondary`` is missing.
    """
    if not rows:
        return []
    rows = [row for row in rows if isinstance(row, dict)]
    config = config or {}

    if node_type in SINGLE_INPUT:
        return SINGLE_INPUT[node_type](rows, config)
    if node_type in DUAL_INPUT:
        if secondary is None:
            return rows
        return DUAL_INPUT[node_type](rows, [r for r in secondary if isinstance(r, dict)], config)
    return rows
