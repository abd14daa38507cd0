"""gigmatch: listing matching and saved-search alerting for a freelance marketplace."""

__version__ = "0.3.0"
