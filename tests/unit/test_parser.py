"""Tests for the deterministic command parser."""

import pytest

from moodboard.canvas.parser import parse_canvas_command, should_use_local_parser


def only_command(text: str) -> dict:
    parsed = parse_canvas_command(text)
    assert parsed is not None
    assert len(parsed["commands"]) == 1
    return parsed["commands"][0]


class TestParseCanvasCommand:
    def test_named_emoji(self):
        command = only_command("add a rocket emoji")
        assert command == {
            "action": "addElement",
            "params": {"type": "emoji", "emoji": "🚀", "fontSize": 48},
        }

    def test_unknown_emoji_name(self):
        assert only_command("add a unicorn emoji")["params"]["emoji"] == "❓"

    def test_direct_emoji(self):
        assert only_command("add 🔥")["params"]["emoji"] == "🔥"

    def test_text_with_content(self):
        command = only_command("add text saying 'Quarterly results'")
        assert command["params"] == {"type": "text", "text": "Quarterly results", "fontSize": 16}

    def test_text_without_content(self):
        assert only_command("add some text")["params"]["text"] == "New Text"

    @pytest.mark.parametrize("text,chart_type", [
        ("add a bar chart", "barChart"),
        ("create a line graph", "lineChart"),
        ("pie chart please", "pieChart"),
        ("scatter chart of price", "scatterPlot"),
    ])
    def test_charts(self, text, chart_type):
        command = only_command(text)
        assert command["action"] == "addVisualization"
        assert command["params"]["type"] == chart_type

    def test_chart_without_known_type_falls_through(self):
        assert parse_canvas_command("make a chart") is None

    def test_square_becomes_rectangle(self):
        command = only_command("draw a square")
        assert command["params"] == {"type": "shape", "shape": "rectangle", "fill": "#3B82F6"}

    def test_arrange_grid(self):
        assert only_command("arrange everything in a grid") == {"action": "arrangeGrid"}

    def test_align_defaults_to_left(self):
        assert only_command("align these")["params"] == {"alignment": "left"}
        assert only_command("align to the top")["params"] == {"alignment": "top"}

    def test_distribute(self):
        assert only_command("distribute vertically")["params"] == {"direction": "vertical"}

    def test_move_selected(self):
        command = only_command("move it left")
        assert command["params"] == {"dx": -50, "dy": 0}
        assert command["target"] == {"selector": "@selected"}

    def test_resize(self):
        assert only_command("make it bigger")["params"] == {"width": 600, "height": 400}
        assert only_command("make it smaller")["params"] == {"width": 200, "height": 150}

    def test_delete(self):
        assert only_command("delete everything") == {"action": "clearCanvas"}
        assert only_command("remove this") == {"action": "removeItem", "target": {"selector": "@selected"}}

    def test_no_match(self):
        assert parse_canvas_command("what is our churn rate?") is None


class TestShouldUseLocalParser:
    def test_keywords(self):
        assert should_use_local_parser("Add a CHART")
        assert should_use_local_parser("please delete that")

    def test_free_form(self):
        assert not should_use_local_parser("build me a marketing overview for Q3")
