# services/__init__.py
"""services package initializer: explicit exports only."""

__all__ = ["posts"]
