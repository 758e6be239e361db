"""Dashboard orchestration: build whole dashboards from a description."""

import copy
import json
from typing import Any, Optional
from uuid import uuid4
from moodboard.orchestration.layout import LayoutEngine, LayoutItem, layout_type_for
from moodboard.orchestration.templates import SEMANTIC_TEMPLATES, SemanticTemplate, TemplateRegistry
from moodboard.orchestration.visualization import recommend_visualizations

MAX_HISTORY = 50
TITLE_OFFSET = 100
MAX_CUSTOM_VISUALIZATIONS = 6

DEFAULT_BACKGROUND = {"type": "color", "value": "#F3F4F6"}

LIGHT_PALETTE = {
    "background": "#FFFFFF",
    "gridColor": "#E5E7EB",
    "textColor": "#1F2937",
    "colors": ["#3B82F6", "#10B981", "#F59E0B", "#EF4444", "#8B5CF6"],
}
DARK_PALETTE = {
    "background": "#1F2937",
    "gridColor": "#374151",
    "textColor": "#F9FAFB",
    "colors": ["#60A5FA", "#34D399", "#FBBF24", "#F87171", "#A78BFA"],
}

DATA_SOURCE_KEYWORDS = {
    "googleads": ("google ads", "adwords"),
    "shopify": ("shopify", "store", "orders"),
    "stripe": ("stripe", "payment"),
    "googlesheets": ("sheets", "spreadsheet"),
}
METRIC_KEYWORDS = {
    "revenue": ("revenue", "sales", "income"),
    "cost": ("cost", "spend", "expense"),
    "profit": ("profit", "margin", "earnings"),
    "conversions": ("conversion", "convert", "purchase"),
    "traffic": ("traffic", "visits", "sessions"),
    "users": ("users", "customers", "clients"),
}
TIMEFRAMES = ("monthly", "weekly", "daily", "yearly", "quarterly")
SAMPLE_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun")


def _default_style() -> dict:
    return {
        "theme": "modern",
        **copy.deepcopy(LIGHT_PALETTE),
        "font": "Inter",
        "fontSize": 12,
        "gradients": False,
        "shadow": False,
        "rounded": False,
        "border": False,
    }


def _empty_state() -> dict:
    return {
        "mode": "design",
        "canvasItems": [],
        "dataTables": [],
        "connections": [],
        "background": dict(DEFAULT_BACKGROUND),
        "theme": "light",
    }


def parse_intent(description: str) -> dict:
    """Extract data sources, metrics, timeframe, visualizations and layout kind."""
    lower = description.lower()
    intent: dict[str, Any] = {
        "dataSources": [source for source, words in DATA_SOURCE_KEYWORDS.items() if any(w in lower for w in words)],
        "metrics": [metric for metric, words in METRIC_KEYWORDS.items() if any(w in lower for w in words)],
        "dimensions": [],
        "timeframe": next((t for t in TIMEFRAMES if t in lower), None),
        "visualizations": [],
        "layout": "dashboard",
    }

    if "table" in lower:
        intent["visualizations"].append("table")
    if "chart" in lower or "graph" in lower:
        if "line" in lower:
            intent["visualizations"].append("lineChart")
        elif "bar" in lower:
            intent["visualizations"].append("barChart")
        elif "pie" in lower:
            intent["visualizations"].append("pieChart")
        else:
            intent["visualizations"].append("chart")

    if "report" in lower:
        intent["layout"] = "report"
    elif "comparison" in lower or "compare" in lower:
        intent["layout"] = "comparison"
    elif "analytics" in lower:
        intent["layout"] = "analytics"
    return intent


class DashboardOrchestrator:
    """Mutable dashboard state with a bounded undo history."""

    def __init__(self, initial_state: Optional[dict] = None):
        self.state = _empty_state()
        if initial_state:
            self.state.update(copy.deepcopy(initial_state))
        self.history: list[dict] = []

    def get_state(self) -> dict:
        return copy.deepcopy(self.state)

    def _save_history(self) -> None:
        self.history.append(copy.deepcopy(self.state))
        if len(self.history) > MAX_HISTORY:
            self.history.pop(0)

    def set_state(self, updates: dict) -> None:
        self._save_history()
        self.state.update(updates)

    def undo(self) -> bool:
        if not self.history:
            return False
        self.state = self.history.pop()
        return True

    def add_visualization(self, viz_type: str, config: Optional[dict] = None) -> str:
        config = config or {}
        item_id = f"viz-{uuid4()}"
        count = len(self.state["canvasItems"])
        item = {
            **{k: v for k, v in config.items() if k not in ("x", "y", "width", "height")},
            "id": item_id,
            "type": viz_type,
            "title": config.get("title") or f"New {viz_type}",
            "x": config["x"] if config.get("x") is not None else 100 + count * 20,
            "y": config["y"] if config.get("y") is not None else 100 + count * 20,
            "width": config["width"] if config.get("width") is not None else 400,
            "height": config["height"] if config.get("height") is not None else 300,
            "data": config.get("data") or [],
            "style": config.get("style") or _default_style(),
            "zIndex": count + 1,
        }
        self._save_history()
        self.state["canvasItems"].append(item)
        return item_id

    def add_data_source(self, source_type: str, config: Optional[dict] = None) -> str:
        config = config or {}
        source_id = f"datasource-{uuid4()}"
        self._save_history()
        self.state["dataTables"].append({
            "id": source_id,
            "type": "dataSource",
            "sourceType": source_type,
            "name": config.get("name") or f"{source_type} Data",
            "x": config.get("x", 100),
            "y": config.get("y", 100),
            "width": 250,
            "height": 150,
            "config": config,
            "connected": False,
            "lastSync": None,
        })
        return source_id

    def connect_nodes(self, source_id: str, target_id: str, config: Optional[dict] = None) -> str:
        config = config or {}
        connection_id = f"conn-{uuid4()}"
        self._save_history()
        self.state["connections"].append({
            "id": connection_id,
            "source": source_id,
            "target": target_id,
            "sourceHandle": config.get("sourceHandle"),
            "targetHandle": config.get("targetHandle"),
            "type": config.get("type") or "smoothstep",
            "animated": config.get("animated", True),
        })
        return connection_id

    def update_item(self, item_id: str, updates: dict) -> bool:
        self._save_history()
        for collection in ("canvasItems", "dataTables"):
            for entry in self.state[collection]:
                if entry.get("id") == item_id:
                    entry.update(updates or {})
                    return True
        return False

    def remove_item(self, item_id: str) -> None:
        self._save_history()
        self.state["canvasItems"] = [i for i in self.state["canvasItems"] if i.get("id") != item_id]
        self.state["dataTables"] = [t for t in self.state["dataTables"] if t.get("id") != item_id]
        self.state["connections"] = [
            c for c in self.state["connections"]
            if c.get("source") != item_id and c.get("target") != item_id
        ]

    def arrange_grid(self, columns: int = 2, gap: float = 20) -> None:
        self._save_history()
        columns = columns or 2
        for index, item in enumerate(self.state["canvasItems"]):
            item["x"] = 100 + (index % columns) * (item.get("width", 400) + gap)
            item["y"] = 100 + (index // columns) * (item.get("height", 300) + gap)

    def set_theme(self, theme: str) -> None:
        self._save_history()
        self.state["theme"] = theme
        palette = DARK_PALETTE if theme == "dark" else LIGHT_PALETTE
        for item in self.state["canvasItems"]:
            if item.get("style"):
                item["style"] = {**item["style"], **copy.deepcopy(palette)}

    def clear(self) -> None:
        self._save_history()
        self.state = _empty_state()

    def _execute_command(self, command: dict) -> Any:
        action = command.get("action")
        params = command.get("params") or {}
        if action == "addVisualization":
            return self.add_visualization(params["type"], params.get("config"))
        if action == "addDataSource":
            return self.add_data_source(params["sourceType"], params.get("config"))
        if action == "connectNodes":
            return self.connect_nodes(params["source"], params["target"], params.get("config"))
        if action == "updateItem":
            return self.update_item(params["id"], params.get("updates") or {})
        if action == "removeItem":
            return self.remove_item(params["id"])
        if action == "arrangeGrid":
            return self.arrange_grid(params.get("columns") or 2, params.get("gap") or 20)
        if action == "setTheme":
            return self.set_theme(params.get("theme") or "light")
        raise ValueError(f"Unknown command: {action}")

    def execute_batch(self, commands: list[dict]) -> list[dict]:
        """Run commands independently; each result records success or the error message."""
        self._save_history()
        results = []
        for command in commands:
            try:
                results.append({"success": True, "result": self._execute_command(command)})
            except (KeyError, TypeError, ValueError) as e:
                message = f"Missing parameter: {e.args[0]}" if isinstance(e, KeyError) else str(e)
                results.append({"success": False, "error": message})
        return results

    def export_state(self) -> str:
        return json.dumps(self.state, indent=2, default=str)

    def import_state(self, state_json: str) -> bool:
        try:
            imported = json.loads(state_json)
        except (TypeError, json.JSONDecodeError):
            return False
        if not isinstance(imported, dict):
            return False
        self._save_history()
        self.state = {**_empty_state(), **imported}
        return True


def _sample_rows(metrics: list[str]) -> list[dict]:
    """Deterministic placeholder series so a custom dashboard renders before data is bound."""
    rows = []
    for index, month in enumerate(SAMPLE_MONTHS):
        row: dict[str, Any] = {"month": month}
        for metric in metrics:
            if metric == "revenue":
                row[metric] = 50000 + index * 8500
            elif metric == "cost":
                row[metric] = 20000 + index * 3200
            elif metric == "conversions":
                row[metric] = 100 + index * 120
            else:
                row[metric] = 250 + index * 75
        rows.append(row)
    return rows


class DashboardBuilder:
    """Turns a natural-language description into a complete dashboard state."""

    def __init__(self, templates: TemplateRegistry = SEMANTIC_TEMPLATES):
        self.templates = templates
        self.orchestrator = DashboardOrchestrator()
        self.layout_engine = LayoutEngine()

    def build_from_description(self, description: str, context: Optional[dict] = None) -> dict:
        context = context or {}
        matches = self.templates.find(description)
        if matches:
            self.build_from_template(matches[0], context)
            return self.orchestrator.get_state()
        return self._build_custom(parse_intent(description), context)

    def _layout(self, visualizations: list[dict]) -> dict[str, dict]:
        items = [
            LayoutItem(
                id=f"viz-{index}",
                type=layout_type_for(viz.get("type")),
                priority=10 - index,
                width=float(viz.get("width") or 400),
                height=float(viz.get("height") or 300),
            )
            for index, viz in enumerate(visualizations)
        ]
        return self.layout_engine.arrange_items(items)

    def build_from_template(self, template: SemanticTemplate, context: Optional[dict] = None) -> None:
        orchestrator = self.orchestrator
        orchestrator.clear()
        orchestrator.set_theme(template.theme)
        orchestrator.add_visualization("title", {"title": template.title, "x": 20, "y": 20, "width": 1560, "height": 60})

        positions = self._layout(template.visualizations)
        for index, viz in enumerate(template.visualizations):
            position = positions.get(f"viz-{index}")
            if position is None:
                continue
            orchestrator.add_visualization(viz["type"], {
                **copy.deepcopy(viz),
                "x": position["x"],
                "y": position["y"] + TITLE_OFFSET,
                "width": position["width"],
                "height": position["height"],
            })

    def _build_custom(self, intent: dict, context: dict) -> dict:
        orchestrator = self.orchestrator
        orchestrator.clear()

        if "googlesheets" in intent["dataSources"] and context.get("spreadsheetId"):
            orchestrator.add_data_source("googlesheets", {
                "name": "Google Sheets Data",
                "spreadsheetId": context["spreadsheetId"],
                "range": context.get("range"),
            })
        if "shopify" in intent["dataSources"] and context.get("store"):
            orchestrator.add_data_source("shopify", {"name": "Shopify Orders", "store": context["store"]})

        rows = _sample_rows(intent["metrics"])
        preferred = intent["visualizations"][0] if intent["visualizations"] else None
        recommendations = recommend_visualizations(rows, preferred)[:MAX_CUSTOM_VISUALIZATIONS]
        positions = self._layout(recommendations)

        for index, viz in enumerate(recommendations):
            position = positions.get(f"viz-{index}")
            if position is None:
                continue
            orchestrator.add_visualization(viz["type"], {
                "title": viz.get("title"),
                "x": position["x"],
                "y": position["y"],
                "width": position["width"],
                "height": position["height"],
                "data": rows,
                "style": viz.get("style"),
            })

        orchestrator.set_theme(context.get("theme") or "light")
        return orchestrator.get_state()
