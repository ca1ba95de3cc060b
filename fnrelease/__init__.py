"""Release orchestrator for a single serverless function."""

__version__ = "0.1.0"
