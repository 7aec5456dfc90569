"""
Bid Kernel

Quantity governance core for bid line items:
- One governing quantity per line item, with an immutable EBSX baseline
- Cached variance classification against the reference quantity
- Reviewer-driven unbalance decisions
- Full auditability via hash chain
"""

__version__ = "0.1.0"
