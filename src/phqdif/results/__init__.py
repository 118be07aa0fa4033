"""Result containers."""

from phqdif.results.score_result import ScoreResult

__all__ = ["ScoreResult"]
