"""Cograph: repository analysis and dependency-graph engine."""

__version__ = "0.1.0"
