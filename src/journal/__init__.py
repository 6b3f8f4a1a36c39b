"""Append-only execution journal (JSON lines)."""

from journal.writer import ExecutionJournal

__all__ = ["ExecutionJournal"]
