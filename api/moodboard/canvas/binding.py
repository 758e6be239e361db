"""Resolve data tables and infer chart field bindings from their schema."""

import math
import re
from datetime import datetime
from typing import Any, Optional

_SEPARATORS = re.compile(r"[-_\s]+")
_X_PATTERN = re.compile(r"date|time|day|month|period|timestamp")
_Y_PATTERN = re.compile(r"value|amount|total|count|price|usd|number|metric|score")
_SERIES_PATTERN = re.compile(r"category|segment|type|group|region|product|name")

_DATE_FORMATS = ("%m/%d/%Y", "%d/%m/%Y", "%b %Y", "%B %Y", "%b %d, %Y", "%B %d, %Y", "%Y/%m/%d")

STAT_SAMPLE_SIZE = 1000


def _table_label(table: dict) -> str:
    return str(table.get("tableName") or table.get("name") or "").lower()


def resolve_table(context: Optional[dict], name: Optional[str] = None, id: Optional[str] = None) -> Optional[dict]:
    """Find a table in ``context.currentState.dataTables`` by id or name.

    Matching order: case-insensitive id, exact name/tableName,
    separator-insensitive equality, substring, separator-insensitive substring.
    """
    state = (context or {}).get("currentState") or {}
    tables = [t for t in state.get("dataTables") or [] if isinstance(t, dict)]
    if not tables:
        return None

    if id:
        wanted = str(id).lower()
        for table in tables:
            if str(table.get("id") or "").lower() == wanted:
                return table

    if not name:
        return None

    needle = str(name).lower().strip()
    for table in tables:
        if str(table.get("tableName") or "").lower() == needle or str(table.get("name") or "").lower() == needle:
            return table

    normalized = _SEPARATORS.sub("", needle)
    for table in tables:
        if _SEPARATORS.sub("", _table_label(table)) == normalized:
            return table

    for table in tables:
        if needle in _table_label(table):
            return table

    for table in tables:
        if normalized in _SEPARATORS.sub("", _table_label(table)):
            return table

    return None


def _find_column(schema: list[dict], pattern: re.Pattern) -> Optional[str]:
    for column in schema:
        name = column.get("name") if isinstance(column, dict) else None
        if name and pattern.search(str(name).lower()):
            return name
    return None


def infer_bindings(schema: Optional[list[dict]], hint: Optional[dict] = None) -> dict:
    """Infer x/y/series fields from column names, honouring explicit hints."""
    schema = schema or []
    hint = hint or {}
    x_field = hint.get("xField") or _find_column(schema, _X_PATTERN)
    y_field = hint.get("yField") or _find_column(schema, _Y_PATTERN)
    series = hint.get("series") or _find_column(schema, _SERIES_PATTERN)
    return {
        "xField": x_field or "x",
        "yField": y_field or "value",
        "series": series,
        "agg": hint.get("agg") or "none",
    }


def to_number(value: Any) -> Optional[float]:
    """Coerce a cell to a finite number, or None."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            number = float(value.strip().replace(",", ""))
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _first_present(row: dict, *keys: Optional[str]) -> Any:
    for key in keys:
        if key is not None and row.get(key) is not None:
            return row[key]
    return None


def materialize_dataset(table: dict, bindings: dict, limit: int = 1000) -> list[dict]:
    """Project table rows into ``{name, value[, series]}`` chart points."""
    rows = table.get("data") if isinstance(table.get("data"), list) else []
    limit = max(1, min(10000, limit or 1000))
    series_field = bindings.get("series")

    points = []
    for index, row in enumerate(rows[:limit]):
        if not isinstance(row, dict):
            continue
        name = _first_present(row, bindings.get("xField"), "name", "label")
        if name is None:
            name = index
        elif not isinstance(name, (str, int, float)):
            name = str(name)

        raw_value = _first_present(row, bindings.get("yField"), "value")
        value = raw_value if isinstance(raw_value, (int, float)) and not isinstance(raw_value, bool) else to_number(raw_value if raw_value is not None else 0)

        point = {"name": name, "value": value}
        if series_field and series_field in row:
            point["series"] = row[series_field]
        points.append(point)
    return points


def looks_like_date(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    text = value.strip()
    try:
        datetime.fromisoformat(text.replace("Z", "+00:00"))
        return True
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            datetime.strptime(text, fmt)
            return True
        except ValueError:
            continue
    return False


def analyze_schema_and_data(table: dict) -> dict:
    """Per-column statistics over the first rows of a table."""
    rows = table.get("data") if isinstance(table.get("data"), list) else []
    schema = table.get("schema") if isinstance(table.get("schema"), list) else []
    if schema:
        columns = [c.get("name") for c in schema if isinstance(c, dict) and c.get("name")]
    else:
        columns = list(rows[0].keys()) if rows and isinstance(rows[0], dict) else []

    sample = [r for r in rows[:STAT_SAMPLE_SIZE] if isinstance(r, dict)]
    stats = []
    for column in columns:
        numeric_count = 0
        date_count = 0
        uniques = set()
        total = 0.0
        total_sq = 0.0
        for row in sample:
            value = row.get(column)
            uniques.add(value if isinstance(value, (str, int, float, bool, type(None))) else repr(value))
            number = to_number(value)
            if number is not None:
                numeric_count += 1
                total += number
                total_sq += number * number
            if looks_like_date(value):
                date_count += 1
        variance = total_sq / numeric_count - (total / numeric_count) ** 2 if numeric_count > 1 else 0.0
        stats.append({
            "col": column,
            "numericCount": numeric_count,
            "dateCount": date_count,
            "uniqueCount": len(uniques),
            "variance": variance,
        })
    return {"rows": rows, "schema": schema, "columns": columns, "stats": stats}


def pick_best_bindings(table: dict, hint: Optional[dict] = None) -> dict:
    """Choose axes statistically: date-like or low-cardinality x, highest-variance numeric y."""
    hint = hint or {}
    stats = analyze_schema_and_data(table)["stats"]

    def by_name(name: Optional[str]) -> Optional[str]:
        if not name:
            return None
        for stat in stats:
            if str(stat["col"]).lower() == str(name).lower():
                return stat["col"]
        return None

    x_field = by_name(hint.get("xField"))
    y_field = by_name(hint.get("yField"))

    if not x_field:
        x_field = next((s["col"] for s in stats if s["dateCount"] > 3), None)
    if not x_field:
        categorical = sorted((s for s in stats if s["numericCount"] < 3), key=lambda s: s["uniqueCount"])
        x_field = categorical[0]["col"] if categorical else None
    if not y_field:
        numeric = sorted((s for s in stats if s["numericCount"] > 3), key=lambda s: s["variance"], reverse=True)
        y_field = numeric[0]["col"] if numeric else None

    if not x_field and stats:
        x_field = stats[0]["col"]
    if not y_field and len(stats) > 1:
        y_field = stats[1]["col"]
    return {"xField": x_field, "yField": y_field, "series": hint.get("series")}


def build_rows_for_axes(table: dict, bindings: dict, limit: int = 1000) -> list[dict]:
    """Rows keyed by the chosen axis fields; rows with a non-numeric y are dropped."""
    rows = table.get("data") if isinstance(table.get("data"), list) else []
    x_field = bindings.get("xField")
    y_field = bindings.get("yField")
    series_field = bindings.get("series")
    if not x_field or not y_field:
        return []

    out = []
    for row in rows[:limit]:
        if not isinstance(row, dict) or x_field not in row or y_field not in row:
            continue
        y_value = to_number(row[y_field])
        if y_value is None:
            continue
        point = {x_field: row[x_field], y_field: y_value}
        if series_field and series_field in row:
            point[series_field] = row[series_field]
        out.append(point)
    return out
