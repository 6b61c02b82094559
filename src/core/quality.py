"""
Advisory content-quality rating
"""

from core.entities import ExtractionStrategy, QualityRating

EXCELLENT_MIN_LENGTH = 1000
GOOD_MIN_LENGTH = 500
FAIR_MIN_LENGTH = 200


def assess_quality(
    text_length: int,
    image_count: int,
    strategy_used: ExtractionStrategy,
) -> QualityRating:
    """
    Pure function of (length, image count, strategy). Never blocks persistence.
    """
    if (
        text_length > EXCELLENT_MIN_LENGTH
        and image_count > 0
        and strategy_used == ExtractionStrategy.PRIMARY
    ):
        return QualityRating.EXCELLENT

    if text_length > GOOD_MIN_LENGTH:
        return QualityRating.GOOD

    if text_length > FAIR_MIN_LENGTH:
        return QualityRating.FAIR

    return QualityRating.POOR
