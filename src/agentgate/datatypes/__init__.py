"""Shared data structures for conversations, warnings, verdicts and streams."""
