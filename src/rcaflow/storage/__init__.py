"""Workflow persistence."""

from .repository import InMemoryWorkflowStore, SQLiteWorkflowStore

__all__ = ["InMemoryWorkflowStore", "SQLiteWorkflowStore"]
