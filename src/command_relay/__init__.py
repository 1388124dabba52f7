"""Coordinator/agent command execution with exactly-once reporting."""

__version__ = "0.1.0"
