"""diskpulse - disk scanning and cleanup engine."""

__version__ = "0.1.0"
