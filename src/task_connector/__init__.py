"""Local agent that runs task-server work against local databases."""

__version__ = "0.1.0"
