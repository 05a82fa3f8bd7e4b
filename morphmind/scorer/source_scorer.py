"""
Source Scorer - Yield Source Ranking

Calculates a composite score for each yield source from its public fields:
- Rate (annualized percent)
- Size (accumulated volume, diminishing returns)
- Stability (distance of the rate from a "stable" anchor)

Score Formula:
    Score = (0.6 x rate)
          + (0.3 x min(volume / 1,000,000, 10))
          + (0.1 x (15 - |rate - 10|))

Weights, size unit/cap and stability anchor/span come from config.
"""

from typing import Dict, Iterable, List, Tuple

from morphmind.ledger.errors import NoActiveSourceError
from morphmind.ledger.models import Source
from morphmind.utils import get_logger

logger = get_logger(__name__)


class SourceScorer:
    """
    Scores sources and picks the optimal one.

    Single Responsibility: score calculation only (pure, no side effects).
    """

    def __init__(self, config: dict):
        """
        Initialize scorer with weights from config.

        Args:
            config: Configuration dict with 'scorer' section

        Raises:
            KeyError: If required config sections are missing (Fast Fail)
        """
        scorer_config = config['scorer']

        self.weights = scorer_config['weights']
        self.size_unit = float(scorer_config['size_unit'])
        self.size_cap = float(scorer_config['size_cap'])
        self.stability_anchor = float(scorer_config['stability_anchor'])
        self.stability_span = float(scorer_config['stability_span'])

        logger.info(
            f"SourceScorer initialized: weights={self.weights}, "
            f"size_cap={self.size_cap}, anchor={self.stability_anchor}"
        )

    def score(self, source: Source) -> float:
        """
        Calculate composite score for one source.

        Args:
            source: Source record (only rate and volume are read)

        Returns:
            Composite score (unbounded real number)
        """
        rate = float(source.rate)
        volume = float(source.volume)

        rate_score = rate
        size_score = min(volume / self.size_unit, self.size_cap)
        stability_score = self.stability_span - abs(rate - self.stability_anchor)

        return (
            self.weights['rate'] * rate_score +
            self.weights['size'] * size_score +
            self.weights['stability'] * stability_score
        )

    def rank_sources(self, sources: Iterable[Source]) -> List[Tuple[Source, float]]:
        """
        Score active sources, best first.

        Ties keep input order (sorted() is stable).
        """
        scored = [(source, self.score(source)) for source in sources if source.active]
        return sorted(scored, key=lambda item: item[1], reverse=True)

    def select_optimal(self, sources: Iterable[Source]) -> str:
        """
        Return the id of the active source with the highest score.

        On exact ties the first source encountered in iteration order wins.
        This ordering is an implementation detail, not a contract.

        Raises:
            NoActiveSourceError: If no source is active
        """
        best_id = None
        best_score = 0.0

        for source in sources:
            if not source.active:
                continue
            score = self.score(source)
            if best_id is None or score > best_score:
                best_id = source.id
                best_score = score

        if best_id is None:
            raise NoActiveSourceError("No active yield source available")

        logger.debug(f"Optimal source: {best_id} (score={best_score:.4f})")
        return best_id

    def score_table(self, sources: Iterable[Source]) -> Dict[str, float]:
        """Scores keyed by source id (all sources, active or not)."""
        return {source.id: self.score(source) for source in sources}
