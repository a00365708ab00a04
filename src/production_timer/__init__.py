"""Local focus timer: sessions, categories, goals and rollup statistics."""

__version__ = "0.1.0"
