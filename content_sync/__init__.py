"""Content synchronization with external publishing platforms."""

__version__ = "0.1.0"
