"""Recommend chart types from the shape of a dataset."""

import re
from typing import Any, Optional
from moodboard.canvas.binding import looks_like_date, to_number

SAMPLE_SIZE = 100
_DATE_PREFIXES = (
    re.compile(r"^\d{4}-\d{2}-\d{2}"),
    re.compile(r"^\d{2}/\d{2}/\d{4}"),
    re.compile(r"^\d{2}-\d{2}-\d{4}"),
)
_BOOLEAN_VALUES = {"true", "false", "1", "0", "yes", "no"}


def _is_date_column(values: list[Any]) -> bool:
    return any(
        any(p.match(str(v)) for p in _DATE_PREFIXES) or looks_like_date(v)
        for v in values
    )


def _is_numeric_column(values: list[Any]) -> bool:
    return all(isinstance(v, bool) or to_number(v) is not None for v in values)


def _is_boolean_column(values: list[Any]) -> bool:
    return all(str(v).lower() in _BOOLEAN_VALUES for v in values)


def analyze_schema(rows: list[dict]) -> dict:
    """Column types (date/number/boolean/string), cardinality and numeric ranges."""
    if not rows or not isinstance(rows[0], dict):
        return {"columns": [], "rowCount": 0}

    sample = [r for r in rows[:SAMPLE_SIZE] if isinstance(r, dict)]
    columns = []
    for key in rows[0].keys():
        values = [r.get(key) for r in sample if r.get(key) is not None]
        uniques = list(dict.fromkeys(v if isinstance(v, (str, int, float, bool)) else repr(v) for v in values))
        column = {"name": key, "cardinality": len(uniques), "sample": uniques[:5]}

        if _is_date_column(values):
            column["type"] = "date"
        elif _is_numeric_column(values):
            column["type"] = "number"
            numbers = [float(v) if isinstance(v, bool) else to_number(v) for v in values]
            column["min"] = min(numbers) if numbers else 0
            column["max"] = max(numbers) if numbers else 0
        elif _is_boolean_column(values):
            column["type"] = "boolean"
        else:
            column["type"] = "string"
        columns.append(column)
    return {"columns": columns, "rowCount": len(rows)}


def _best_categorical(schema: dict) -> Optional[dict]:
    candidates = [c for c in schema["columns"] if c["type"] == "string" and 1 < c["cardinality"] <= 20]
    return min(candidates, key=lambda c: c["cardinality"], default=None)


def _best_numerical(schema: dict) -> Optional[dict]:
    candidates = [c for c in schema["columns"] if c["type"] == "number"]
    return max(candidates, key=lambda c: (c.get("max") or 0) - (c.get("min") or 0), default=None)


def _filter_by_intent(recommendations: list[dict], intent: str) -> list[dict]:
    lower = intent.lower()
    if "trend" in lower or "time" in lower:
        keep = {"lineChart", "areaChart"}
    elif "compare" in lower or "versus" in lower:
        keep = {"barChart", "scatterPlot"}
    elif "distribution" in lower or "proportion" in lower:
        keep = {"pieChart", "histogram"}
    elif "table" in lower or "details" in lower:
        keep = {"table"}
    else:
        return recommendations
    return [r for r in recommendations if r["type"] in keep]


def recommend_visualizations(rows: list[dict], preferred: Optional[str] = None) -> list[dict]:
    """Suggest visualizations for ``rows``, optionally narrowed by an intent word."""
    schema = analyze_schema(rows)
    columns = schema["columns"]
    row_count = schema["rowCount"]

    date_columns = [c for c in columns if c["type"] == "date"]
    numeric_columns = [c for c in columns if c["type"] == "number"]
    has_categorical = any(
        c["type"] == "string" and 1 < c["cardinality"] < row_count * 0.5
        for c in columns
    )

    recommendations: list[dict] = []

    if date_columns and numeric_columns:
        date_column = date_columns[0]["name"]
        recommendations.append({
            "type": "lineChart",
            "title": "Trend Over Time",
            "xAxis": date_column,
            "yAxis": [c["name"] for c in numeric_columns],
            "style": {"smooth": True, "showPoints": False},
        })
        if len(numeric_columns) > 1:
            recommendations.append({
                "type": "areaChart",
                "title": "Stacked Metrics",
                "xAxis": date_column,
                "series": [c["name"] for c in numeric_columns],
                "style": {"stacked": True},
            })

    if has_categorical and numeric_columns:
        category = _best_categorical(schema)
        metric = _best_numerical(schema)
        if category and metric:
            recommendations.append({
                "type": "barChart",
                "title": f"{metric['name']} by {category['name']}",
                "xAxis": category["name"],
                "yAxis": metric["name"],
                "style": {"orientation": "horizontal" if category["cardinality"] > 5 else "vertical"},
            })
            if category["cardinality"] <= 8:
                recommendations.append({
                    "type": "pieChart",
                    "title": f"{category['name']} Distribution",
                    "groupBy": category["name"],
                    "aggregation": "sum",
                    "style": {"showLabels": True, "showLegend": True},
                })

    if len(numeric_columns) >= 2:
        first, second = numeric_columns[0]["name"], numeric_columns[1]["name"]
        recommendations.append({
            "type": "scatterPlot",
            "title": f"{first} vs {second}",
            "xAxis": first,
            "yAxis": second,
            "style": {"showTrendline": True},
        })

    if numeric_columns and row_count > 20:
        metric = _best_numerical(schema)
        recommendations.append({
            "type": "histogram",
            "title": f"{metric['name']} Distribution",
            "xAxis": metric["name"],
            "style": {"bins": 20},
        })

    if numeric_columns:
        recommendations.append({
            "type": "kpiCard",
            "title": "Key Metrics",
            "series": [c["name"] for c in numeric_columns[:4]],
            "style": {"layout": "horizontal", "showTrend": bool(date_columns)},
        })

    recommendations.append({
        "type": "table",
        "title": "Data Table",
        "style": {"sortable": True, "filterable": True, "pagination": row_count > 50},
    })

    if preferred:
        return _filter_by_intent(recommendations, preferred)
    return recommendations
