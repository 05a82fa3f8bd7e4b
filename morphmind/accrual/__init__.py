"""
ACCRUAL Module - Reward Accrual

Components:
- AccrualEngine: time-proportional reward accrual per position
"""

from morphmind.accrual.engine import AccrualEngine, HOURS_PER_YEAR

__all__ = ['AccrualEngine', 'HOURS_PER_YEAR']
