"""Personal automation assistant: agentic tool-use loop."""

__version__ = "0.1.0"
