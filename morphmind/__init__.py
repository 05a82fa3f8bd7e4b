"""
MorphMind - Yield Accrual and Allocation Engine

Tracks stake positions, accrues simulated rewards, and reallocates
positions toward the best-scoring yield source.
"""

__version__ = "1.0.0"
