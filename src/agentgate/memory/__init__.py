"""Bounded conversation memory with rolling summaries."""
