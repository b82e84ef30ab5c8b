"""Model-facing components: prompt composition, token sources and stream aggregation."""
