"""Financial-event and payroll computation engine for cleaning-service companies."""

__version__ = "0.1.0"
