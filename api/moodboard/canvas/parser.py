"""Deterministic natural-language parser for common canvas commands.

Handles the simple requests (add an emoji, draw a circle, align left, ...)
without an LLM round trip. ``parse_canvas_command`` returns ``None`` when
nothing matches so the caller can fall back to the model.
"""

import re
from typing import Optional

EMOJI_MAP = {
    "dog": "🐶", "cat": "🐱", "heart": "❤️", "star": "⭐",
    "smile": "😊", "laugh": "😂", "fire": "🔥", "party": "🎉",
    "rocket": "🚀", "moon": "🌙", "sun": "☀️", "rainbow": "🌈",
    "pizza": "🍕", "coffee": "☕", "beer": "🍺", "wine": "🍷",
    "cake": "🎂", "gift": "🎁", "money": "💰", "crown": "👑",
    "thumbs up": "👍", "clap": "👏", "wave": "👋", "ok": "👌",
}
UNKNOWN_EMOJI = "❓"

CHART_KEYWORDS = (
    ("bar", "barChart"),
    ("line", "lineChart"),
    ("pie", "pieChart"),
    ("area", "areaChart"),
    ("scatter", "scatterPlot"),
)

SHAPES = ("rectangle", "circle", "triangle", "square", "oval")
SHAPE_FILL = "#3B82F6"

LOCAL_KEYWORDS = (
    "emoji", "text", "chart", "graph", "shape",
    "rectangle", "circle", "triangle",
    "arrange", "align", "distribute",
    "move", "bigger", "smaller",
    "delete", "remove",
)

_EMOJI_NAMED = re.compile(r"(?:add|insert|place|put)\s*(?:a|an|the)?\s*(.+?)\s*emoji", re.IGNORECASE)
_EMOJI_DIRECT = re.compile(
    r"(?:add|insert|place|put)\s*(?:a|an|the)?\s*([\U0001F300-\U0001F9FF]|[☀-⛿]|[✀-➿])"
)
_TEXT_CONTENT = re.compile(r"(?:saying|that says|with text|reading)\s*[\"']?(.+?)[\"']?$", re.IGNORECASE)

_SELECTED = {"selector": "@selected"}
_MOVE_STEP = 50


def _single(action: str, params: Optional[dict] = None, target: Optional[dict] = None) -> dict:
    command = {"action": action}
    if params is not None:
        command["params"] = params
    if target is not None:
        command["target"] = dict(target)
    return {"commands": [command]}


def parse_canvas_command(text: str) -> Optional[dict]:
    """Translate a short instruction into ``{"commands": [...]}`` or None."""
    lower = text.lower().strip()

    match = _EMOJI_NAMED.search(text)
    if match:
        emoji = EMOJI_MAP.get(match.group(1).lower(), UNKNOWN_EMOJI)
        return _single("addElement", {"type": "emoji", "emoji": emoji, "fontSize": 48})

    match = _EMOJI_DIRECT.search(text)
    if match:
        return _single("addElement", {"type": "emoji", "emoji": match.group(1), "fontSize": 48})

    if "text" in lower:
        match = _TEXT_CONTENT.search(text)
        content = match.group(1) if match else "New Text"
        return _single("addElement", {"type": "text", "text": content, "fontSize": 16})

    if "chart" in lower or "graph" in lower:
        for keyword, chart_type in CHART_KEYWORDS:
            if keyword in lower:
                return _single("addVisualization", {"type": chart_type, "title": f"{keyword} chart"})

    for shape in SHAPES:
        if shape in lower:
            return _single("addElement", {
                "type": "shape",
                "shape": "rectangle" if shape == "square" else shape,
                "fill": SHAPE_FILL,
            })

    if "arrange" in lower and "grid" in lower:
        return _single("arrangeGrid")

    if "align" in lower:
        alignment = next((side for side in ("left", "right", "top", "bottom") if side in lower), "left")
        return _single("align", {"alignment": alignment})

    if "distribute" in lower or "space" in lower:
        return _single("distribute", {"direction": "vertical" if "vertical" in lower else "horizontal"})

    # "remove" contains "move"
    if "delete" in lower or "remove" in lower:
        if "everything" in lower or "all" in lower:
            return _single("clearCanvas")
        return _single("removeItem", target=_SELECTED)

    if "move" in lower:
        if "left" in lower:
            delta = {"dx": -_MOVE_STEP, "dy": 0}
        elif "right" in lower:
            delta = {"dx": _MOVE_STEP, "dy": 0}
        elif "up" in lower:
            delta = {"dx": 0, "dy": -_MOVE_STEP}
        elif "down" in lower:
            delta = {"dx": 0, "dy": _MOVE_STEP}
        else:
            delta = {"dx": 0, "dy": 0}
        return _single("moveItem", delta, _SELECTED)

    if "bigger" in lower or "larger" in lower:
        return _single("resizeItem", {"width": 600, "height": 400}, _SELECTED)

    if "smaller" in lower or "tiny" in lower:
        return _single("resizeItem", {"width": 200, "height": 150}, _SELECTED)

    return None


def should_use_local_parser(text: str) -> bool:
    lower = text.lower()
    return any(keyword in lower for keyword in LOCAL_KEYWORDS)
