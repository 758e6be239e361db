"""Tests for AI command validation and guards."""

import pytest

from moodboard.canvas.validators import (
    CanvasLimitError,
    apply_validation_guards,
    validate_commands,
)
from moodboard.config import settings


class TestValidateCommands:
    def test_accepts_known_actions_case_insensitively(self):
        commands = [
            {"action": "addVisualization", "params": {"type": "barChart"}},
            {"action": "ARRANGEGRID"},
            {"action": "createDataFlow", "params": {"nodes": ["a", "b"]}},
        ]
        assert validate_commands(commands) is None

    def test_empty_batch_is_valid(self):
        assert validate_commands([]) is None

    def test_rejects_non_object(self):
        assert validate_commands(["addVisualization"]) == "Invalid command object"

    @pytest.mark.parametrize("command", [{}, {"action": ""}, {"action": 42}])
    def test_requires_action(self, command):
        assert validate_commands([command]) == "Command.action is required"

    def test_rejects_unknown_action(self):
        assert validate_commands([{"action": "dropDatabase"}]) == "Unsupported action: dropDatabase"

    def test_reports_first_error(self):
        error = validate_commands([{"action": "setTheme"}, {"action": "nope"}, "bad"])
        assert error == "Unsupported action: nope"


class TestGuards:
    def test_clamps_resize_dimensions(self):
        command = {"action": "resizeItem", "params": {"width": 5000, "height": 10}}
        apply_validation_guards("resizeItem", command, {})
        assert command["params"] == {"width": 2000, "height": 80}

    def test_leaves_in_range_dimensions(self):
        command = {"action": "resizeItem", "params": {"width": 500, "height": 400}}
        apply_validation_guards("resizeitem", command, {})
        assert command["params"] == {"width": 500, "height": 400}

    def test_ignores_non_numeric_dimensions(self):
        command = {"action": "resizeItem", "params": {"width": "wide", "height": "5000"}}
        apply_validation_guards("resizeItem", command, {})
        assert command["params"] == {"width": "wide", "height": 1200}

    def test_item_limit_blocks_adds(self):
        state = {"canvasItems": [{"id": str(i)} for i in range(settings.max_canvas_items + 1)]}
        with pytest.raises(CanvasLimitError, match="Too many items on canvas"):
            apply_validation_guards("addVisualization", {"action": "addVisualization"}, state)

    def test_item_limit_allows_other_actions(self):
        state = {"canvasItems": [{"id": str(i)} for i in range(settings.max_canvas_items + 1)]}
        apply_validation_guards("removeItem", {"action": "removeItem"}, state)

    def test_limit_is_exceeded_only_above_maximum(self):
        state = {"canvasItems": [{"id": str(i)} for i in range(settings.max_canvas_items)]}
        apply_validation_guards("addElement", {"action": "addElement"}, state)
