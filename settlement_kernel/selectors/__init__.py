"""Read-only selector base classes."""

from settlement_kernel.selectors.base import BaseSelector

__all__ = ["BaseSelector"]
