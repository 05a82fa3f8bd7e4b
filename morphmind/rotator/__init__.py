"""
ROTATOR Module - Position Reallocation

Single Responsibility: move positions toward the optimal source

Components:
- ReallocationEngine: hysteresis-guarded rebinding of positions
"""

from morphmind.rotator.reallocator import ReallocationEngine

__all__ = ['ReallocationEngine']
