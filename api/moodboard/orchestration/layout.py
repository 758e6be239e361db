"""Automatic placement of dashboard components."""

import math
from dataclasses import dataclass
from typing import Literal, Optional

LayoutType = Literal["chart", "table", "kpi", "filter", "title", "text"]

ROW_HEIGHT = 100
TITLE_HEIGHT = 60
KPI_HEIGHT = 100
FILTER_WIDTH = 250
FILTER_HEIGHT = 80
SPECIAL_TYPES = ("kpi", "filter", "title")


@dataclass
class LayoutItem:
    id: str
    type: LayoutType
    priority: float  # 1-10, higher = more important
    width: float
    height: float


class LayoutEngine:
    """Arranges layout items on a fixed-size canvas.

    Uses a dashboard layout (title row, KPI row, filter column, packed main
    area) when any title, KPI or filter item is present, otherwise a
    best-fit 12-column grid with 100px rows.
    """

    def __init__(
        self,
        canvas_width: float = 1600,
        canvas_height: float = 900,
        padding: float = 20,
        gap: float = 20,
        columns: int = 12,
    ):
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self.padding = padding
        self.gap = gap
        self.columns = columns

    def arrange_items(self, items: list[LayoutItem]) -> dict[str, dict]:
        """Return ``{item_id: {x, y, width, height}}``; unplaceable grid items are omitted."""
        ordered = sorted(items, key=lambda i: i.priority, reverse=True)
        if any(i.type in SPECIAL_TYPES for i in items):
            return self._dashboard_layout(ordered)
        return self._grid_layout(ordered)

    def _dashboard_layout(self, items: list[LayoutItem]) -> dict[str, dict]:
        positions: dict[str, dict] = {}
        padding, gap = self.padding, self.gap
        content_width = self.canvas_width - padding * 2
        y = padding

        for item in (i for i in items if i.type == "title"):
            positions[item.id] = {"x": padding, "y": y, "width": content_width, "height": TITLE_HEIGHT}
            y += TITLE_HEIGHT + gap

        kpis = [i for i in items if i.type == "kpi"]
        if kpis:
            kpi_width = math.floor((content_width - gap * (len(kpis) - 1)) / len(kpis))
            for index, item in enumerate(kpis):
                positions[item.id] = {"x": padding + index * (kpi_width + gap), "y": y, "width": kpi_width, "height": KPI_HEIGHT}
            y += KPI_HEIGHT + gap

        main_x = padding
        main_width = content_width
        filters = [i for i in items if i.type == "filter"]
        if filters:
            for index, item in enumerate(filters):
                positions[item.id] = {
                    "x": padding,
                    "y": y + index * (FILTER_HEIGHT + gap),
                    "width": FILTER_WIDTH,
                    "height": FILTER_HEIGHT,
                }
            main_x = padding + FILTER_WIDTH + gap
            main_width = content_width - FILTER_WIDTH - gap

        main_items = [i for i in items if i.type not in SPECIAL_TYPES]
        if main_items:
            positions.update(self._pack(main_items, main_x, y, main_width))
        return positions

    def _grid_layout(self, items: list[LayoutItem]) -> dict[str, dict]:
        positions: dict[str, dict] = {}
        columns = self.columns
        content_width = self.canvas_width - self.padding * 2
        column_width = (content_width - self.gap * (columns - 1)) / columns
        rows = math.ceil(self.canvas_height / ROW_HEIGHT)
        grid = [[False] * columns for _ in range(rows)]

        for item in items:
            cols_needed = math.ceil(item.width / column_width)
            rows_needed = math.ceil(item.height / ROW_HEIGHT)
            slot = self._find_best_position(grid, cols_needed, rows_needed)
            if slot is None:
                continue
            row, col = slot
            for r in range(row, min(row + rows_needed, rows)):
                for c in range(col, min(col + cols_needed, columns)):
                    grid[r][c] = True
            positions[item.id] = {
                "x": self.padding + col * (column_width + self.gap),
                "y": self.padding + row * ROW_HEIGHT,
                "width": cols_needed * column_width + (cols_needed - 1) * self.gap,
                "height": rows_needed * ROW_HEIGHT,
            }
        return positions

    def _pack(self, items: list[LayoutItem], start_x: float, start_y: float, max_width: float) -> dict[str, dict]:
        """Row-wise shelf packing inside a region."""
        positions: dict[str, dict] = {}
        x, y = start_x, start_y
        row_height = 0.0
        for item in items:
            if x + item.width > start_x + max_width:
                x = start_x
                y += row_height + self.gap
                row_height = 0.0
            positions[item.id] = {"x": x, "y": y, "width": min(item.width, max_width), "height": item.height}
            x += item.width + self.gap
            row_height = max(row_height, item.height)
        return positions

    @staticmethod
    def _find_best_position(grid: list[list[bool]], cols_needed: int, rows_needed: int) -> Optional[tuple[int, int]]:
        rows = len(grid)
        cols = len(grid[0]) if grid else 0
        for r in range(rows - rows_needed + 1):
            for c in range(cols - cols_needed + 1):
                if all(not grid[r + dr][c + dc] for dr in range(rows_needed) for dc in range(cols_needed)):
                    return r, c
        return None

    def make_responsive(self, positions: dict[str, dict], viewport_width: float) -> dict[str, dict]:
        scale = viewport_width / self.canvas_width
        return {
            item_id: {key: value * scale for key, value in position.items()}
            for item_id, position in positions.items()
        }

    def compact(self, positions: dict[str, dict], min_gap: float = 10) -> dict[str, dict]:
        """Close gaps: items within 10px vertically form a row, rows are restacked."""
        ordered = sorted(positions.items(), key=lambda entry: (entry[1]["y"], entry[1]["x"]))
        rows: list[list[tuple[str, dict]]] = []
        for entry in ordered:
            if rows and abs(entry[1]["y"] - rows[-1][0][1]["y"]) < 10:
                rows[-1].append(entry)
            else:
                rows.append([entry])

        compacted: dict[str, dict] = {}
        y = self.padding
        for row in rows:
            x = self.padding
            for item_id, position in row:
                compacted[item_id] = {**position, "x": x, "y": y}
                x += position["width"] + min_gap
            y += max(p["height"] for _, p in row) + min_gap
        return compacted

    def flow(self, items: list[LayoutItem]) -> dict[str, dict]:
        """Reading-order layout, one band per priority level (highest first)."""
        bands: dict[int, list[LayoutItem]] = {}
        for item in items:
            bands.setdefault(math.floor(item.priority), []).append(item)

        positions: dict[str, dict] = {}
        y = self.padding
        for priority in sorted(bands, reverse=True):
            x = self.padding
            row_height = 0.0
            for item in bands[priority]:
                if x + item.width > self.canvas_width - self.padding:
                    x = self.padding
                    y += row_height + self.gap
                    row_height = 0.0
                positions[item.id] = {"x": x, "y": y, "width": item.width, "height": item.height}
                x += item.width + self.gap
                row_height = max(row_height, item.height)
            y += row_height + self.gap * 1.5
        return positions


LAYOUT_TEMPLATES: dict[str, list[LayoutItem]] = {
    "dashboard": [
        LayoutItem("title", "title", 10, 1600, 60),
        LayoutItem("kpi1", "kpi", 9, 380, 100),
        LayoutItem("kpi2", "kpi", 9, 380, 100),
        LayoutItem("kpi3", "kpi", 9, 380, 100),
        LayoutItem("kpi4", "kpi", 9, 380, 100),
        LayoutItem("chart1", "chart", 8, 760, 400),
        LayoutItem("chart2", "chart", 7, 760, 400),
        LayoutItem("table1", "table", 6, 1560, 300),
    ],
    "report": [
        LayoutItem("title", "title", 10, 1600, 80),
        LayoutItem("summary", "text", 9, 1600, 120),
        LayoutItem("chart1", "chart", 8, 1600, 400),
        LayoutItem("table1", "table", 7, 1600, 500),
        LayoutItem("chart2", "chart", 6, 780, 350),
        LayoutItem("chart3", "chart", 6, 780, 350),
    ],
    "comparison": [
        LayoutItem("title", "title", 10, 1600, 60),
        LayoutItem("filter1", "filter", 9, 250, 80),
        LayoutItem("filter2", "filter", 9, 250, 80),
        LayoutItem("chart1", "chart", 8, 650, 400),
        LayoutItem("chart2", "chart", 8, 650, 400),
        LayoutItem("table1", "table", 7, 1300, 400),
    ],
    "analytics": [
        LayoutItem("kpi1", "kpi", 10, 300, 120),
        LayoutItem("kpi2", "kpi", 10, 300, 120),
        LayoutItem("kpi3", "kpi", 10, 300, 120),
        LayoutItem("kpi4", "kpi", 10, 300, 120),
        LayoutItem("kpi5", "kpi", 10, 300, 120),
        LayoutItem("chart1", "chart", 9, 800, 450),
        LayoutItem("chart2", "chart", 8, 750, 450),
        LayoutItem("chart3", "chart", 7, 500, 350),
        LayoutItem("chart4", "chart", 7, 500, 350),
        LayoutItem("chart5", "chart", 7, 500, 350),
    ],
}


def layout_type_for(viz_type: Optional[str]) -> LayoutType:
    """Map a visualization type to its layout slot kind."""
    if not isinstance(viz_type, str):
        return "chart"
    if "Card" in viz_type:
        return "kpi"
    if "able" in viz_type:
        return "table"
    return "chart"
