# tuition/services/stage_prices.py
#
# Stage → base tuition lookup. Stage names come from enrollment data
# and are full class names ("الصف الثالث الابتدائي", "KG2", ...), so
# they are matched to a price category by substring.

from decimal import Decimal
from typing import Mapping, Optional

from tuition.core.config import settings
from tuition.utils.money import to_decimal


class StagePriceTable:

    def __init__(self, prices: Optional[Mapping[str, Decimal]] = None):
        source = settings.STAGE_BASE_PRICES if prices is None else prices
        self._prices = {name: to_decimal(price) for name, price in source.items()}

    def category_for(self, stage: Optional[str]) -> Optional[str]:
        if not stage:
            return None
        if stage in self._prices:
            return stage
        for category in self._prices:
            if category in stage:
                return category
        return None

    def lookup(self, stage: Optional[str]) -> Optional[Decimal]:
        """Base price for the stage, or None when no category matches."""
        category = self.category_for(stage)
        return self._prices[category] if category else None

    def __contains__(self, stage: str) -> bool:
        return self.category_for(stage) is not None
