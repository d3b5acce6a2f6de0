"""Event ticket booking, payment verification and gate admission."""

__version__ = "0.1.0"
