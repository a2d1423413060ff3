# services/posts/__init__.py
"""posts service package initializer: explicit exports only; no runtime side effects."""

__all__ = ["app", "models", "repo", "routes", "service", "metrics"]
