"""GitHub pull request to build bridge."""

__version__ = "0.1.0"
