"""Productivity backend: tasks, events, habits, daily summaries and Tecsup sync."""

__version__ = "0.1.0"
