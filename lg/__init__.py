"""lg: Linear + GitHub issue CLI."""

__version__ = "1.1.0"
