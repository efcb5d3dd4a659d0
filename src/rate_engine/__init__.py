"""
Shipping Rate Engine Package

Computes shipment quotes from versioned carrier pricing tables.
Resolves Table → Weight Bracket → Services → Customer Contract → Promotions → Tax,
with a full trace of every step.
"""

__version__ = "1.0.0"
