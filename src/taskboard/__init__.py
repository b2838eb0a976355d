"""Local task-coordination store for multi-session agent workflows."""

__version__ = "0.4.0"
