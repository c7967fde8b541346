"""Deterministic statistics: numeric helpers, behavior profiling and the engine."""
