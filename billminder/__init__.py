"""
BillMinder - Core Package

Personal bill tracking: recurring and one-time obligations, payment
settlement with optional verified proof, and best-effort sync of a
local-first store to a remote mirror.

DESIGN PRINCIPLES:
1. Local state is the source of truth
2. Display status is derived, never stored
3. Strict payment audit is a Pro capability
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "BillMinder Team"
