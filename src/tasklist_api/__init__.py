"""Filtered, grouped task lists with progress ratios and dependency gating."""

__version__ = "0.1.0"
