"""A configurable API gateway that aggregates and reshapes backend responses."""

__version__ = "0.1.0"