"""STEPS operations KPI service."""

__version__ = "0.1.0"
