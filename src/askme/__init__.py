"""askme: a streaming multi-session chat client."""

__version__ = "0.1.0"
