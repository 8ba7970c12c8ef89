"""Cont3xt: indicator lookup across pluggable integrations."""

__version__ = "1.0.0"
