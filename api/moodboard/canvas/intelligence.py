"""Spatial reasoning over canvas items.

Gives the command executor a notion of free space, neighbours, grids,
alignment and clusters so AI-issued commands place items sensibly.
Items are plain dicts as sent by the editor (``id``, ``type``, ``x``,
``y``, ``width``, ``height``, optional ``data``).
"""

import math
from typing import Any, Optional

DEFAULT_CANVAS_WIDTH = 1920
DEFAULT_CANVAS_HEIGHT = 1080
DEFAULT_ITEM_WIDTH = 400
DEFAULT_ITEM_HEIGHT = 300

SPATIAL_ACTIONS = frozenset({
    "findspace",
    "findemptyspace",
    "placenear",
    "positionnear",
    "arrangegrid",
    "align",
    "distribute",
    "createpipeline",
    "getanalytics",
    "finditems",
    "findoverlaps",
})


def _num(value: Any, default: float = 0) -> float:
    try:
        number = float(value) if value is not None else default
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _box(item: dict) -> tuple[float, float, float, float]:
    return (
        _num(item.get("x")),
        _num(item.get("y")),
        _num(item.get("width"), DEFAULT_ITEM_WIDTH),
        _num(item.get("height"), DEFAULT_ITEM_HEIGHT),
    )


def _overlap(a: tuple, b: tuple) -> bool:
    """Bounds are (left, top, right, bottom); touching edges count as overlap."""
    return not (a[2] < b[0] or a[0] > b[2] or a[3] < b[1] or a[1] > b[3])


def _has_data(item: dict) -> bool:
    return item.get("data") not in (None, "", False, 0)


class CanvasIntelligence:
    """Spatial queries and layout suggestions for one canvas snapshot."""

    grid_size = 20
    padding = 24

    def __init__(
        self,
        items: Optional[list[dict]] = None,
        connections: Optional[list[dict]] = None,
        canvas_width: float = DEFAULT_CANVAS_WIDTH,
        canvas_height: float = DEFAULT_CANVAS_HEIGHT,
    ):
        self.items = [i for i in items or [] if isinstance(i, dict)]
        self.connections = [c for c in connections or [] if isinstance(c, dict)]
        self.canvas_width = canvas_width or DEFAULT_CANVAS_WIDTH
        self.canvas_height = canvas_height or DEFAULT_CANVAS_HEIGHT

    @classmethod
    def from_state(cls, state: dict) -> "CanvasIntelligence":
        return cls(
            items=state.get("canvasItems") or [],
            connections=state.get("connections") or [],
            canvas_width=state.get("canvasWidth") or DEFAULT_CANVAS_WIDTH,
            canvas_height=state.get("canvasHeight") or DEFAULT_CANVAS_HEIGHT,
        )

    def _get(self, item_id: Any) -> Optional[dict]:
        return next((i for i in self.items if i.get("id") == item_id), None)

    def _select(self, item_ids: Optional[list]) -> list[dict]:
        if item_ids is None:
            return list(self.items)
        wanted = set(item_ids)
        return [i for i in self.items if i.get("id") in wanted]

    def snap_to_grid(self, x: float, y: float) -> dict:
        # Half-up rounding keeps snapping stable for negative and .5 positions
        return {
            "x": int(math.floor(x / self.grid_size + 0.5) * self.grid_size),
            "y": int(math.floor(y / self.grid_size + 0.5) * self.grid_size),
        }

    def _occupied_areas(self) -> list[tuple]:
        areas = []
        for item in self.items:
            x, y, w, h = _box(item)
            areas.append((x - self.padding, y - self.padding, x + w + self.padding, y + h + self.padding))
        return areas

    def _is_space_empty(self, position: dict, width: float, height: float, occupied: list[tuple]) -> bool:
        bounds = (position["x"], position["y"], position["x"] + width, position["y"] + height)
        if bounds[0] < 0 or bounds[1] < 0 or bounds[2] > self.canvas_width or bounds[3] > self.canvas_height:
            return False
        return not any(_overlap(bounds, area) for area in occupied)

    def find_empty_space(self, width: float, height: float) -> dict:
        """Spiral outward from the canvas centre to the first free, grid-snapped slot.

        Falls back to (100, 100) when the canvas is full.
        """
        occupied = self._occupied_areas()
        center_x = self.canvas_width / 2
        center_y = self.canvas_height / 2
        max_radius = max(self.canvas_width, self.canvas_height)

        radius = 100
        while radius < max_radius:
            for step in range(16):
                angle = step * math.pi / 8
                candidate = self.snap_to_grid(
                    center_x + math.cos(angle) * radius - width / 2,
                    center_y + math.sin(angle) * radius - height / 2,
                )
                if self._is_space_empty(candidate, width, height, occupied):
                    return candidate
            radius += 50

        return self.snap_to_grid(100, 100)

    def find_position_near_item(self, target_id: Any, width: float, height: float, side: Optional[str] = None) -> dict:
        """Place a new item beside ``target_id``, trying ``side`` first."""
        target = self._get(target_id)
        if target is None:
            return self.find_empty_space(width, height)

        x, y, w, h = _box(target)
        gap = self.padding * 2
        candidates = {
            "right": (x + w + gap, y),
            "left": (x - width - gap, y),
            "bottom": (x, y + h + gap),
            "top": (x, y - height - gap),
        }
        order = ["right", "bottom", "left", "top"]
        if side in candidates:
            order = [side] + [s for s in candidates if s != side]

        occupied = self._occupied_areas()
        for name in order:
            position = self.snap_to_grid(*candidates[name])
            if self._is_space_empty(position, width, height, occupied):
                return position

        return self.find_empty_space(width, height)

    def arrange_grid(self, item_ids: Optional[list] = None) -> list[dict]:
        """Centre the selected items (all by default) in a near-square grid."""
        items = self._select(item_ids)
        if not items:
            return []

        cols = math.ceil(math.sqrt(len(items)))
        rows = math.ceil(len(items) / cols)
        cell_width = max(_box(i)[2] for i in items) + self.padding * 2
        cell_height = max(_box(i)[3] for i in items) + self.padding * 2
        start_x = (self.canvas_width - cols * cell_width) / 2
        start_y = (self.canvas_height - rows * cell_height) / 2

        moves = []
        for index, item in enumerate(items):
            col = index % cols
            row = index // cols
            _, _, w, h = _box(item)
            moves.append({
                "id": item.get("id"),
                "position": self.snap_to_grid(
                    start_x + col * cell_width + (cell_width - w) / 2,
                    start_y + row * cell_height + (cell_height - h) / 2,
                ),
            })
        return moves

    def align_items(self, item_ids: list, alignment: str) -> list[dict]:
        """Align items on an edge (left/right/top/bottom) or centre line (centerX/centerY)."""
        items = self._select(item_ids or [])
        if not items:
            return []

        boxes = [(item.get("id"), *_box(item)) for item in items]
        positions = []
        if alignment == "left":
            min_x = min(b[1] for b in boxes)
            positions = [(b[0], min_x, b[2]) for b in boxes]
        elif alignment == "right":
            max_right = max(b[1] + b[3] for b in boxes)
            positions = [(b[0], max_right - b[3], b[2]) for b in boxes]
        elif alignment == "top":
            min_y = min(b[2] for b in boxes)
            positions = [(b[0], b[1], min_y) for b in boxes]
        elif alignment == "bottom":
            max_bottom = max(b[2] + b[4] for b in boxes)
            positions = [(b[0], b[1], max_bottom - b[4]) for b in boxes]
        elif alignment == "centerX":
            avg = sum(b[1] + b[3] / 2 for b in boxes) / len(boxes)
            positions = [(b[0], avg - b[3] / 2, b[2]) for b in boxes]
        elif alignment == "centerY":
            avg = sum(b[2] + b[4] / 2 for b in boxes) / len(boxes)
            positions = [(b[0], b[1], avg - b[4] / 2) for b in boxes]

        return [{"id": item_id, "position": self.snap_to_grid(x, y)} for item_id, x, y in positions]

    def distribute_evenly(self, item_ids: list, direction: str) -> list[dict]:
        """Equalise the gaps between items along one axis, keeping the outer bounds."""
        items = self._select(item_ids or [])
        if len(items) <= 1:
            return []

        horizontal = direction == "horizontal"
        axis, size = (0, 2) if horizontal else (1, 3)
        boxes = sorted((_box(item) + (item.get("id"),) for item in items), key=lambda b: b[axis])

        total_size = sum(b[size] for b in boxes)
        span = max(b[axis] + b[size] for b in boxes) - min(b[axis] for b in boxes)
        spacing = (span - total_size) / (len(boxes) - 1)

        moves = []
        cursor = boxes[0][axis]
        for box in boxes:
            x, y = (cursor, box[1]) if horizontal else (box[0], cursor)
            moves.append({"id": box[4], "position": self.snap_to_grid(x, y)})
            cursor += box[size] + spacing
        return moves

    def create_pipeline_layout(self, source_id: Any, transform_ids: list, output_id: Any) -> list[dict]:
        """Lay out source → transforms → output left to right at mid-height."""
        spacing = 200
        start_x = 100
        center_y = self.canvas_height / 2
        moves = []

        source = self._get(source_id)
        if source is not None:
            moves.append({"id": source_id, "position": self.snap_to_grid(start_x, center_y - _box(source)[3] / 2)})

        cursor = start_x + (_box(source)[2] if source is not None else 0) + spacing
        for transform_id in transform_ids or []:
            transform = self._get(transform_id)
            if transform is None:
                continue
            _, _, w, h = _box(transform)
            moves.append({"id": transform_id, "position": self.snap_to_grid(cursor, center_y - h / 2)})
            cursor += w + spacing

        output = self._get(output_id)
        if output is not None:
            moves.append({"id": output_id, "position": self.snap_to_grid(cursor, center_y - _box(output)[3] / 2)})
        return moves

    def _is_connected(self, item_id: Any) -> bool:
        return any(c.get("source") == item_id or c.get("target") == item_id for c in self.connections)

    def find_items(self, type: Optional[str] = None, has_data: Optional[bool] = None, connected: Optional[bool] = None) -> list[dict]:
        """Filter items by type substring, data presence and connection state."""
        found = []
        for item in self.items:
            if type and type.lower() not in str(item.get("type") or "").lower():
                continue
            if has_data is not None and _has_data(item) != bool(has_data):
                continue
            if connected is not None and self._is_connected(item.get("id")) != bool(connected):
                continue
            found.append(item)
        return found

    def find_overlapping_items(self) -> list[list]:
        overlaps = []
        for i, a in enumerate(self.items):
            ax, ay, aw, ah = _box(a)
            for b in self.items[i + 1:]:
                bx, by, bw, bh = _box(b)
                if _overlap((ax, ay, ax + aw, ay + ah), (bx, by, bx + bw, by + bh)):
                    overlaps.append([a.get("id"), b.get("id")])
        return overlaps

    def canvas_utilization(self) -> int:
        occupied = sum(_box(i)[2] * _box(i)[3] for i in self.items)
        return int(math.floor(occupied / (self.canvas_width * self.canvas_height) * 100 + 0.5))

    def identify_clusters(self, max_distance: float = 300) -> list[dict]:
        """Greedy proximity clusters (top-left distance below ``max_distance``)."""
        clusters = []
        processed = set()
        for item in self.items:
            item_id = item.get("id")
            if item_id in processed:
                continue
            x, y, w, h = _box(item)
            center = {"x": x + w / 2, "y": y + h / 2}
            members = [item_id]
            processed.add(item_id)

            for other in self.items:
                other_id = other.get("id")
                if other_id in processed:
                    continue
                ox, oy, ow, oh = _box(other)
                if math.hypot(ox - x, oy - y) < max_distance:
                    members.append(other_id)
                    processed.add(other_id)
                    center = {"x": (center["x"] + ox + ow / 2) / 2, "y": (center["y"] + oy + oh / 2) / 2}

            if len(members) > 1:
                clusters.append({"center": center, "items": members})
        return clusters

    def suggested_actions(self) -> list[str]:
        suggestions = []

        sources = self.find_items(type="data")
        unconnected = [s for s in sources if not any(c.get("source") == s.get("id") for c in self.connections)]
        if unconnected:
            suggestions.append(f"Connect {len(unconnected)} unconnected data source(s)")

        overlaps = self.find_overlapping_items()
        if overlaps:
            suggestions.append(f"Rearrange {len(overlaps)} overlapping items")

        outside = 0
        for item in self.items:
            x, y, w, h = _box(item)
            if x < 0 or y < 0 or x + w > self.canvas_width or y + h > self.canvas_height:
                outside += 1
        if outside:
            suggestions.append(f"Bring {outside} items into view")

        if len(self.items) > 10 and self.canvas_utilization() > 50:
            suggestions.append("Organize items in a grid layout")
        return suggestions

    def get_canvas_analytics(self) -> dict:
        by_type: dict[str, int] = {}
        for item in self.items:
            kind = str(item.get("type") or "").lower()
            by_type[kind] = by_type.get(kind, 0) + 1

        endpoints = {c.get("source") for c in self.connections} | {c.get("target") for c in self.connections}
        return {
            "totalItems": len(self.items),
            "itemsByType": by_type,
            "connections": len(self.connections),
            "connectedItems": len(endpoints),
            "unconnectedItems": sum(1 for i in self.items if not self._is_connected(i.get("id"))),
            "canvasUtilization": self.canvas_utilization(),
            "clusters": self.identify_clusters(),
            "suggestedActions": self.suggested_actions(),
        }


def _apply_moves(state: dict, moves: list[dict]) -> None:
    by_id = {item.get("id"): item for item in state.get("canvasItems") or [] if isinstance(item, dict)}
    for move in moves:
        item = by_id.get(move["id"])
        if item is not None:
            item["x"] = move["position"]["x"]
            item["y"] = move["position"]["y"]


def execute_intelligent_command(action: str, params: Optional[dict], state: dict) -> tuple[dict, str]:
    """Run a spatial command against ``state`` (mutated in place).

    Returns:
        (state, human-readable description)
    """
    params = params or {}
    intelligence = CanvasIntelligence.from_state(state)
    action = action.lower()

    if action in ("findspace", "findemptyspace"):
        position = intelligence.find_empty_space(
            _num(params.get("width"), DEFAULT_ITEM_WIDTH) or DEFAULT_ITEM_WIDTH,
            _num(params.get("height"), DEFAULT_ITEM_HEIGHT) or DEFAULT_ITEM_HEIGHT,
        )
        state["suggestedPosition"] = position
        return state, f"Found empty space at ({position['x']}, {position['y']})"

    if action in ("placenear", "positionnear"):
        target_id = params.get("targetId") or params.get("target")
        position = intelligence.find_position_near_item(
            target_id,
            _num(params.get("width"), DEFAULT_ITEM_WIDTH) or DEFAULT_ITEM_WIDTH,
            _num(params.get("height"), DEFAULT_ITEM_HEIGHT) or DEFAULT_ITEM_HEIGHT,
            params.get("side") or "right",
        )
        state["suggestedPosition"] = position
        return state, f"Positioned near {target_id} at ({position['x']}, {position['y']})"

    if action == "arrangegrid":
        moves = intelligence.arrange_grid(params.get("items") or params.get("itemIds"))
        _apply_moves(state, moves)
        return state, f"Arranged {len(moves)} items in a grid"

    if action == "align":
        alignment = params.get("alignment") or "left"
        moves = intelligence.align_items(params.get("items") or params.get("itemIds") or [], alignment)
        _apply_moves(state, moves)
        return state, f"Aligned {len(moves)} items {alignment}"

    if action == "distribute":
        direction = params.get("direction") or "horizontal"
        moves = intelligence.distribute_evenly(params.get("items") or params.get("itemIds") or [], direction)
        _apply_moves(state, moves)
        return state, f"Distributed {len(moves)} items evenly {direction}ly"

    if action == "createpipeline":
        source_id = params.get("source")
        transform_ids = params.get("transforms") or []
        output_id = params.get("output")
        moves = intelligence.create_pipeline_layout(source_id, transform_ids, output_id)
        _apply_moves(state, moves)

        connections = state.setdefault("connections", [])
        chain = [node for node in [source_id, *transform_ids, output_id] if node]
        for source, target in zip(chain, chain[1:]):
            connections.append({"source": source, "target": target})
        return state, f"Created pipeline with {len(moves)} items"

    if action == "findoverlaps":
        overlaps = intelligence.find_overlapping_items()
        state["overlappingItems"] = overlaps
        return state, f"Found {len(overlaps)} overlapping items"

    if action == "getanalytics":
        analytics = intelligence.get_canvas_analytics()
        state["canvasAnalytics"] = analytics
        return (
            state,
            f"Canvas has {analytics['totalItems']} items, {analytics['connections']} connections, "
            f"{analytics['canvasUtilization']}% utilization",
        )

    if action == "finditems":
        items = intelligence.find_items(params.get("type"), params.get("hasData"), params.get("connected"))
        state["foundItems"] = items
        return state, f"Found {len(items)} items matching criteria"

    return state, "Unknown command"
