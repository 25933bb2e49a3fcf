"""SpecFlow: codebase context sync, safe file apply and model relay."""

__version__ = "0.2.0"
