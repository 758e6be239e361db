"""Allow-list validation and guards for AI canvas commands."""

import math
from typing import Any, Optional
from moodboard.config import settings

ALLOWED_ACTIONS = frozenset({
    "addvisualization",
    "addelement",
    "updateitem",
    "removeitem",
    "moveitem",
    "resizeitem",
    "binddata",
    "arrangelayout",
    "settheme",
    "listdatasets",
    "clearcanvas",
    # Spatial commands
    "findspace",
    "findemptyspace",
    "placenear",
    "arrangegrid",
    "align",
    "distribute",
    "createpipeline",
    "getanalytics",
    "finditems",
    "findoverlaps",
    # Data flow
    "connectnodes",
    "createdataflow",
    "groupitems",
})

GUARD_MIN_WIDTH, GUARD_MAX_WIDTH = 100, 2000
GUARD_MIN_HEIGHT, GUARD_MAX_HEIGHT = 80, 1200


class CanvasLimitError(Exception):
    """Raised when a command would grow the canvas past its item limit."""


def validate_commands(commands: list[Any]) -> Optional[str]:
    """Validate a batch of commands.

    Returns:
        The first validation error message, or None when every command is valid
    """
    for command in commands:
        if not isinstance(command, dict):
            return "Invalid command object"
        action = command.get("action")
        if not action or not isinstance(action, str):
            return "Command.action is required"
        if action.lower() not in ALLOWED_ACTIONS:
            return f"Unsupported action: {action}"
    return None


def _as_float(value: Any) -> Optional[float]:
    """Numeric value of a size parameter, or None when it is not a finite number."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def apply_validation_guards(action: str, command: dict, state: dict) -> None:
    """Clamp out-of-range parameters in place and enforce the canvas item limit.

    Raises:
        CanvasLimitError: If an add command targets a canvas that is already full
    """
    action = action.lower()
    params = command.get("params")

    if action == "resizeitem" and isinstance(params, dict):
        width = _as_float(params.get("width"))
        if width and not GUARD_MIN_WIDTH <= width <= GUARD_MAX_WIDTH:
            params["width"] = max(GUARD_MIN_WIDTH, min(GUARD_MAX_WIDTH, width))
        height = _as_float(params.get("height"))
        if height and not GUARD_MIN_HEIGHT <= height <= GUARD_MAX_HEIGHT:
            params["height"] = max(GUARD_MIN_HEIGHT, min(GUARD_MAX_HEIGHT, height))

    if action in ("addvisualization", "addelement"):
        count = len(state.get("canvasItems") or [])
        if count > settings.max_canvas_items:
            raise CanvasLimitError("Too many items on canvas")
