"""Transfer matching and boundary classification for bank-statement transactions."""

__version__ = "0.1.0"
