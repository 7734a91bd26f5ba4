"""Gravity Bridge orchestrator building blocks: Cosmos broadcasting, claim ordering, address and token symbol helpers."""

__version__ = "0.1.0"

__all__ = ["__version__"]