"""Personal reading tracker: timed reading sessions and reading statistics."""

__version__ = "0.1.0"
