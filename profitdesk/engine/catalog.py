import logging
from typing import Dict, List, Optional

from ..data.models import SkuRecord

logger = logging.getLogger(__name__)


class CatalogIndex:
    """SKU目录索引（后端汇总数据的只读缓存）"""

    def __init__(self, repository, skus: Optional[List[SkuRecord]] = None):
        self.repository = repository
        self._skus: Dict[str, SkuRecord] = {}
        # 刷新失败后置为 True，下次访问时重试
        self.stale = False
        if skus is not None:
            self._load(skus)
        else:
            self.refresh()

    def _load(self, skus: List[SkuRecord]):
        self._skus = {record.sku: record for record in skus}

    def refresh(self) -> "CatalogIndex":
        """重新从后端读取SKU列表"""
        self._load(self.repository.list_skus())
        self.stale = False
        logger.info(f"Catalog refreshed: {len(self._skus)} SKUs, "
                    f"{len(self.skus_without_hpp())} without HPP")
        return self

    def mark_stale(self):
        self.stale = True

    def list_skus(self) -> List[SkuRecord]:
        return list(self._skus.values())

    def get(self, sku: str) -> Optional[SkuRecord]:
        return self._skus.get(sku)

    def __contains__(self, sku: str) -> bool:
        return sku in self._skus

    def __len__(self) -> int:
        return len(self._skus)

    def search(self, term: Optional[str] = None) -> List[SkuRecord]:
        """按SKU或商品名模糊搜索（不区分大小写）"""
        if not term or not term.strip():
            return self.list_skus()
        needle = term.strip().lower()
        return [
            record for record in self._skus.values()
            if needle in record.sku.lower() or needle in (record.item_name or '').lower()
        ]

    def skus_without_hpp(self) -> List[SkuRecord]:
        return [record for record in self._skus.values() if not record.has_hpp]
