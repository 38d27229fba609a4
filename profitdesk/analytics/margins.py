from enum import Enum
from decimal import Decimal
from typing import Dict, Iterable, Optional

from ..data.models import ProductRollup

HIGH_MARGIN_FLOOR = Decimal('30')
GOOD_MARGIN_FLOOR = Decimal('15')
LOW_MARGIN_FLOOR = Decimal('5')


class MarginBand(Enum):
    """毛利率分档"""
    HIGH = 'High Margin (>30%)'
    GOOD = 'Good Margin (15-30%)'
    LOW = 'Low Margin (5-15%)'
    POOR = 'Poor Margin (<5%)'
    NO_HPP = 'No HPP Set'

    @property
    def label(self) -> str:
        return self.value


def classify_margin(margin: Optional[Decimal], has_hpp: bool = True) -> MarginBand:
    """按毛利率分档（30% 归入 GOOD）"""
    if not has_hpp:
        return MarginBand.NO_HPP
    # 有HPP但收入为0时毛利率无定义，按最差档处理
    if margin is None:
        return MarginBand.POOR
    if margin > HIGH_MARGIN_FLOOR:
        return MarginBand.HIGH
    if margin >= GOOD_MARGIN_FLOOR:
        return MarginBand.GOOD
    if margin >= LOW_MARGIN_FLOOR:
        return MarginBand.LOW
    return MarginBand.POOR


def bucket_by_margin_band(products: Iterable[ProductRollup]) -> Dict[MarginBand, int]:
    """统计各毛利率分档的SKU数量"""
    counts = {band: 0 for band in MarginBand}
    for product in products:
        counts[classify_margin(product.gross_margin, product.has_hpp)] += 1
    return counts
