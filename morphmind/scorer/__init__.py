"""
SCORER Module - Yield Source Scoring

Single Responsibility: Calculate composite scores for yield sources

Components:
- SourceScorer: score, rank, and select the optimal active source
"""

from morphmind.ledger.errors import NoActiveSourceError
from morphmind.scorer.source_scorer import SourceScorer

__all__ = ['SourceScorer', 'NoActiveSourceError']
