"""EventGate: request admission and trust layer for the event aggregator."""

__version__ = "0.1.0"
