"""
MARKET Module - Simulated Market Conditions

Components:
- RateDriftSimulator: bounded random drift of source rates
"""

from morphmind.market.rate_drift import RateDriftSimulator

__all__ = ['RateDriftSimulator']
