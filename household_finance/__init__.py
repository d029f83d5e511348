"""Household finance copilot: analytics, savings opportunities and recommendations."""

__version__ = "1.0.0"
