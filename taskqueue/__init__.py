"""Distributed task queue: coordinator, worker nodes and producer."""

__version__ = "0.1.0"
