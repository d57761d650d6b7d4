"""EMI emotional support chat companion."""

__version__ = "0.1.0"
