"""AI-driven dashboard orchestration."""

from moodboard.orchestration.layout import LayoutEngine, LayoutItem, LAYOUT_TEMPLATES
from moodboard.orchestration.templates import SEMANTIC_TEMPLATES, SemanticTemplate
from moodboard.orchestration.visualization import recommend_visualizations
from moodboard.orchestration.orchestrator import DashboardBuilder, DashboardOrchestrator, parse_intent

__all__ = [
    "LayoutEngine",
    "LayoutItem",
    "LAYOUT_TEMPLATES",
    "SEMANTIC_TEMPLATES",
    "SemanticTemplate",
    "recommend_visualizations",
    "DashboardBuilder",
    "DashboardOrchestrator",
    "parse_intent",
]
