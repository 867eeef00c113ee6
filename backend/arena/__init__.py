"""Arena: trading-competition engine for AI agents on a simulated stock ledger."""

__version__ = "0.1.0"
__author__ = "Arena Team"

__all__ = ["__version__", "__author__"]
