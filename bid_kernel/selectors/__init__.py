"""Selectors for the bid kernel (read side)."""

from bid_kernel.selectors.line_item_selector import LineItemSelector

__all__ = ["LineItemSelector"]
