"""Nomad Now directory & matching backend."""

__version__ = "0.1.0"
