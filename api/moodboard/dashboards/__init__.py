"""Saved canvases (dashboards) and public sharing."""
