"""Buyback settlement gateway - Python implementation."""

from settler.composer import ComposeRequest, SettlementComposer, get_default_composer

__version__ = "0.1.0"
__all__ = ["ComposeRequest", "SettlementComposer", "get_default_composer", "__version__"]
