"""Local mirror of an upstream bookmark collection with tag-filtered reads."""

__version__ = "0.1.0"
