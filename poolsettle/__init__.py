"""
poolsettle: exact settlement of leveraged position decreases and multi-hop
swaps against shared liquidity pools.
"""

__version__ = "0.1.0"
