"""eventhub: event listings and bookings backend."""

__version__ = "0.1.0"
