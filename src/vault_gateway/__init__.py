"""Outbound gateway and OAuth broker for the life-management backend."""

__version__ = "0.1.0"
