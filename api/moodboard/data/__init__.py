"""Tabular data processing for data-flow nodes."""
