"""Simulated guarded heap for catching leaks and buffer overruns in tests."""

__version__ = "0.1.0"
__all__ = ["config", "memory"]