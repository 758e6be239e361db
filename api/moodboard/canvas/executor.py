"""Apply validated AI commands to a canvas state.

The executor works on a deep copy of ``context["currentState"]`` and
returns the new state; the caller's payload is never mutated.
"""

import copy
import math
import time
from typing import Any, Optional, Protocol
from uuid import uuid4
from moodboard.canvas.binding import (
    build_rows_for_axes,
    infer_bindings,
    materialize_dataset,
    pick_best_bindings,
    resolve_table,
)
from moodboard.canvas.intelligence import (
    DEFAULT_ITEM_HEIGHT,
    DEFAULT_ITEM_WIDTH,
    SPATIAL_ACTIONS,
    CanvasIntelligence,
    execute_intelligent_command,
)
from moodboard.canvas.validators import apply_validation_guards

CHART_TYPES = {"line", "bar", "pie", "area", "scatter"}

DEFAULT_CHART_STYLE = {
    "theme": "modern",
    "colors": ["#3B82F6", "#10B981", "#F59E0B", "#EF4444", "#8B5CF6"],
    "background": "#FFFFFF",
    "gridColor": "#E5E7EB",
    "textColor": "#1F2937",
    "font": "Inter",
    "fontSize": 12,
    "gradients": False,
}

ELEMENT_SIZES = {
    "text": (200, 50),
    "emoji": (64, 64),
    "shape": (150, 150),
    "image": (300, 200),
}

UPDATABLE_FIELDS = ("title", "type", "style", "options")

RESIZE_MIN_WIDTH, RESIZE_MAX_WIDTH = 120, 2000
RESIZE_MIN_HEIGHT, RESIZE_MAX_HEIGHT = 100, 1200

LAYOUT_START_Y = 80
LAYOUT_GAP = 24

ADD_BIND_LIMIT = 500
BIND_LIMIT = 2000


class DatasetLoader(Protocol):
    """Looks up the current user's stored tables when the context lacks them."""

    async def find_table(self, name: Optional[str] = None, table_id: Optional[str] = None) -> Optional[dict]:
        ...

    async def list_datasets(self) -> list[dict]:
        ...


def _new_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid4().hex[:6]}"


def _is_chart_like(item: dict) -> bool:
    kind = str(item.get("type") or "").lower()
    return "chart" in kind or kind in CHART_TYPES


def _number(value: Any, default: float) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value if math.isfinite(value) else default
    try:
        number = float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


class CommandExecutor:
    """Executes a batch of canvas commands.

    Args:
        context: Request context; ``context["currentState"]`` is the canvas
        dataset_loader: Optional loader for tables not present in the context
    """

    def __init__(self, context: dict, dataset_loader: Optional[DatasetLoader] = None):
        self.context = context or {}
        self.dataset_loader = dataset_loader
        self.state = copy.deepcopy(self.context.get("currentState") or {})

    @property
    def items(self) -> list[dict]:
        items = self.state.get("canvasItems")
        if not isinstance(items, list):
            items = self.state["canvasItems"] = []
        return items

    @property
    def elements(self) -> list[dict]:
        elements = self.state.get("canvasElements")
        if not isinstance(elements, list):
            elements = self.state["canvasElements"] = []
        return elements

    async def execute(self, commands: list[dict]) -> dict:
        """Apply ``commands`` in order and return the resulting state.

        Raises:
            CanvasLimitError: If an add command hits the canvas item limit
        """
        for command in commands:
            action = str(command.get("action") or "").lower()
            apply_validation_guards(action, command, self.state)
            params = command.get("params") if isinstance(command.get("params"), dict) else {}

            if action in SPATIAL_ACTIONS:
                execute_intelligent_command(action, params, self.state)
                continue

            handler = getattr(self, f"_do_{action}", None)
            if handler is not None:
                await handler(command, params)
        return self.state

    # Target selection

    def _pick_target(self, command: dict) -> Optional[dict]:
        target = command.get("target") if isinstance(command.get("target"), dict) else {}
        pool = self.items + self.elements

        if target.get("id"):
            return next((i for i in pool if i.get("id") == target["id"]), None)
        if target.get("title"):
            title = str(target["title"]).lower()
            return next((i for i in pool if str(i.get("title") or "").lower() == title), None)

        selector = target.get("selector")
        if selector == "@selected" and self.state.get("selectedItem"):
            return next((i for i in pool if i.get("id") == self.state["selectedItem"]), None)
        if selector == "#last":
            for item in reversed(self.items):
                if _is_chart_like(item):
                    return item
            return self.items[-1] if self.items else None
        return None

    # Placement

    def _place(self, params: dict, width: float, height: float) -> dict:
        if params.get("x") is not None and params.get("y") is not None:
            return {"x": params["x"], "y": params["y"]}

        intelligence = CanvasIntelligence(
            items=self.items + self.elements,
            connections=self.state.get("connections") or [],
            canvas_width=self.state.get("canvasWidth"),
            canvas_height=self.state.get("canvasHeight"),
        )
        near = params.get("nearId") or params.get("near")
        if near:
            return intelligence.find_position_near_item(near, width, height, params.get("side"))
        return intelligence.find_empty_space(width, height)

    # Bindings

    def _bind_rows(self, table: dict, params: dict, limit: int) -> tuple[list[dict], dict, bool]:
        """Return (rows, bindings, rows_are_points)."""
        hint = {
            "xField": params.get("xField"),
            "yField": params.get("yField"),
            "series": params.get("series"),
            "agg": params.get("agg"),
        }
        bindings = infer_bindings(table.get("schema"), hint)
        rows = materialize_dataset(table, bindings, limit)
        if rows:
            return rows, bindings, True

        best = pick_best_bindings(table, hint)
        bindings = {
            **bindings,
            "xField": best["xField"] or bindings["xField"],
            "yField": best["yField"] or bindings["yField"],
            "series": best["series"] or bindings["series"],
        }
        rows = build_rows_for_axes(table, bindings, limit)
        if rows:
            return rows, bindings, False
        return materialize_dataset(table, bindings, limit), bindings, True

    async def _resolve_table(self, params: dict) -> Optional[dict]:
        table = resolve_table(self.context, name=params.get("table"), id=params.get("tableId"))
        if table is None and self.dataset_loader is not None and (params.get("table") or params.get("tableId")):
            table = await self.dataset_loader.find_table(name=params.get("table"), table_id=params.get("tableId"))
        return table

    # Command handlers

    async def _do_addvisualization(self, command: dict, params: dict) -> None:
        chart_type = params.get("type") or "barChart"
        width = _number(params.get("width"), DEFAULT_ITEM_WIDTH) or DEFAULT_ITEM_WIDTH
        height = _number(params.get("height"), DEFAULT_ITEM_HEIGHT) or DEFAULT_ITEM_HEIGHT
        position = self._place(params, width, height)

        item = {
            "id": _new_id("item"),
            "type": chart_type,
            "title": params.get("title") or f"New {chart_type.replace('Chart', ' Chart')}",
            "x": position["x"],
            "y": position["y"],
            "width": width,
            "height": height,
            "data": [],
            "style": copy.deepcopy(DEFAULT_CHART_STYLE),
            "zIndex": len(self.items) + 1,
        }
        self.items.append(item)

        if params.get("table") or params.get("xField") or params.get("yField"):
            table = resolve_table(self.context, name=params.get("table"))
            if table is not None:
                bindings = infer_bindings(table.get("schema"), {
                    "xField": params.get("xField"),
                    "yField": params.get("yField"),
                    "series": params.get("series"),
                    "agg": params.get("agg"),
                })
                item["data"] = materialize_dataset(table, bindings, ADD_BIND_LIMIT)
                item["bindings"] = bindings

    async def _do_addelement(self, command: dict, params: dict) -> None:
        kind = params.get("type") or "text"
        default_width, default_height = ELEMENT_SIZES.get(kind, ELEMENT_SIZES["text"])
        width = _number(params.get("width"), default_width) or default_width
        height = _number(params.get("height"), default_height) or default_height
        position = self._place(params, width, height)

        element = {
            key: value
            for key, value in params.items()
            if key not in ("x", "y", "width", "height", "nearId", "near", "side")
        }
        element.update({
            "id": _new_id("element"),
            "type": kind,
            "x": position["x"],
            "y": position["y"],
            "width": width,
            "height": height,
            "zIndex": len(self.items) + len(self.elements) + 1,
        })
        if kind == "text":
            element.setdefault("text", "New Text")
        self.elements.append(element)

    async def _do_binddata(self, command: dict, params: dict) -> None:
        target = self._pick_target(command)
        if target is None:
            return
        table = await self._resolve_table(params)
        if table is None:
            return

        rows, bindings, as_points = self._bind_rows(table, params, BIND_LIMIT)
        target["data"] = rows
        if as_points:
            axes = {"xAxis": "name", "yAxis": "value"}
        else:
            axes = {"xAxis": bindings["xField"], "yAxis": bindings["yField"]}
        target["options"] = {**(target.get("options") or {}), **axes}
        target["bindings"] = bindings

    async def _do_moveitem(self, command: dict, params: dict) -> None:
        target = self._pick_target(command)
        if target is None:
            return
        target["x"] = _number(target.get("x"), 0) + _number(params.get("dx"), 0)
        target["y"] = _number(target.get("y"), 0) + _number(params.get("dy"), 0)

    async def _do_resizeitem(self, command: dict, params: dict) -> None:
        target = self._pick_target(command)
        if target is None:
            return
        width = _number(params.get("width"), 0) or _number(target.get("width"), DEFAULT_ITEM_WIDTH)
        height = _number(params.get("height"), 0) or _number(target.get("height"), DEFAULT_ITEM_HEIGHT)
        target["width"] = max(RESIZE_MIN_WIDTH, min(RESIZE_MAX_WIDTH, width))
        target["height"] = max(RESIZE_MIN_HEIGHT, min(RESIZE_MAX_HEIGHT, height))

    async def _do_updateitem(self, command: dict, params: dict) -> None:
        target = self._pick_target(command)
        if target is None:
            return
        for field in UPDATABLE_FIELDS:
            if field in params:
                target[field] = params[field]

    async def _do_removeitem(self, command: dict, params: dict) -> None:
        target = self._pick_target(command)
        if target is None:
            return
        target_id = target.get("id")
        self.state["canvasItems"] = [i for i in self.items if i.get("id") != target_id]
        self.state["canvasElements"] = [e for e in self.elements if e.get("id") != target_id]
        if isinstance(self.state.get("connections"), list):
            self.state["connections"] = [
                c for c in self.state["connections"]
                if c.get("source") != target_id and c.get("target") != target_id
            ]

    async def _do_clearcanvas(self, command: dict, params: dict) -> None:
        self.state["canvasItems"] = []
        self.state["canvasElements"] = []
        self.state["connections"] = []

    async def _do_arrangelayout(self, command: dict, params: dict) -> None:
        y = LAYOUT_START_Y
        for item in self.items:
            item["y"] = y
            y += _number(item.get("height"), DEFAULT_ITEM_HEIGHT) + LAYOUT_GAP

    async def _do_settheme(self, command: dict, params: dict) -> None:
        self.state["theme"] = "dark" if params.get("theme") == "dark" else "light"

    async def _do_listdatasets(self, command: dict, params: dict) -> None:
        if self.dataset_loader is not None:
            self.state["__datasets"] = await self.dataset_loader.list_datasets()
            return
        self.state["__datasets"] = [
            {
                "name": t.get("tableName") or t.get("name"),
                "row_count": t.get("rowCount", t.get("row_count")),
                "source": t.get("source"),
            }
            for t in self.state.get("dataTables") or []
            if isinstance(t, dict)
        ]

    def _connect(self, source: Any, target: Any) -> None:
        if not source or not target:
            return
        connections = self.state.get("connections")
        if not isinstance(connections, list):
            connections = self.state["connections"] = []
        connections.append({"id": _new_id("conn"), "source": source, "target": target})

    async def _do_connectnodes(self, command: dict, params: dict) -> None:
        self._connect(params.get("source") or params.get("from"), params.get("target") or params.get("to"))

    async def _do_createdataflow(self, command: dict, params: dict) -> None:
        nodes = params.get("nodes")
        if isinstance(nodes, list) and nodes:
            for source, target in zip(nodes, nodes[1:]):
                self._connect(source, target)
            return
        chain = [params.get("source"), *(params.get("transforms") or []), params.get("output") or params.get("target")]
        chain = [node for node in chain if node]
        for source, target in zip(chain, chain[1:]):
            self._connect(source, target)

    async def _do_groupitems(self, command: dict, params: dict) -> None:
        wanted = set(params.get("items") or params.get("itemIds") or [])
        if not wanted:
            return
        group_id = params.get("groupId") or _new_id("group")
        for item in self.items + self.elements:
            if item.get("id") in wanted:
                item["groupId"] = group_id
