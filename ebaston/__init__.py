"""E-Baston voice core: command interpretation, confirmation and guided capture."""

__version__ = "0.3.0"
