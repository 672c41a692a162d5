"""
Fieldwork Kernel - farm work process engine

A library for tracking field work through user-defined category pipelines:
- Category chains with cycle-safe successor links
- Per-category stage machine with worker and settlement gates
- Settlement computation (rate x quantity, transport surcharges, ad hoc additions)
- Append-only stage history
"""

__version__ = "0.1.0"
