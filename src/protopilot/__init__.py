"""ProtoPilot: generator catalog, generation dispatch, and document sync."""

__all__ = ["__version__"]

__version__ = "0.1.0"
