# profitdesk/engine/ingestion.py
"""HPP录入会话

每个录入流程（一个打开的对话框）拥有一个 CostBasisSession，
待提交集合按SKU保存，同一SKU后写覆盖先写。
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..data.amounts import parse_non_negative
from ..data.models import CostBasisUpdate, IngestionReport
from ..reports.tabular import ValidRow, decode_spreadsheet, from_tabular
from .catalog import CatalogIndex
from .errors import ValidationError

logger = logging.getLogger(__name__)

STATUS_PENDING = 'Pending'
STATUS_SET = 'Set'
STATUS_NOT_SET = 'Not Set'


class CostBasisSession:
    """HPP录入会话（待提交集合归本会话独有）"""

    def __init__(self, catalog: CatalogIndex):
        self.catalog = catalog
        self._pending: Dict[str, CostBasisUpdate] = {}
        self.last_active = datetime.now()

    def touch(self):
        self.last_active = datetime.now()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _name_hint(self, sku: str, fallback: Optional[str] = None) -> Optional[str]:
        record = self.catalog.get(sku)
        if record is not None and record.item_name:
            return record.item_name
        return fallback

    def apply_manual_edit(self, sku: str, raw_value: Any) -> CostBasisUpdate:
        """手工录入HPP；无效值会移除该SKU已有的待提交记录并抛出 ValidationError"""
        hpp = parse_non_negative(raw_value)
        if hpp is None:
            removed = self._pending.pop(sku, None)
            if removed is not None:
                logger.debug(f"Discarded pending HPP for {sku} after invalid input {raw_value!r}")
            raise ValidationError(sku, raw_value)

        update = CostBasisUpdate(sku=sku, hpp=hpp, item_name=self._name_hint(sku), source='manual')
        self._pending[sku] = update
        return update

    def ingest_tabular_upload(self, rows: Sequence[Dict[Any, Any]]) -> IngestionReport:
        """合并表格行到待提交集合，无效行静默跳过"""
        parsed = from_tabular(rows)
        merged: List[str] = []

        for row in parsed:
            if not isinstance(row, ValidRow):
                continue
            self._pending[row.sku] = CostBasisUpdate(
                sku=row.sku,
                hpp=row.hpp,
                item_name=self._name_hint(row.sku, row.item_name),
                source=row.source,
            )
            merged.append(row.sku)

        skus = list(dict.fromkeys(merged))
        unknown = [sku for sku in skus if sku not in self.catalog]
        report = IngestionReport(total_rows=len(rows), ingested=len(merged), skus=skus, unknown_skus=unknown)

        logger.info(f"Spreadsheet ingested: {report.ingested}/{report.total_rows} rows, "
                    f"{len(skus)} SKUs, {len(unknown)} not in catalog")
        return report

    def ingest_file(self, content: bytes, filename: str = '') -> IngestionReport:
        """解析上传的表格文件并合并（文件无法读取时抛出 ParseError）"""
        rows = decode_spreadsheet(content, filename)
        return self.ingest_tabular_upload(rows)

    def current_pending(self) -> Dict[str, CostBasisUpdate]:
        """待提交集合快照"""
        return dict(self._pending)

    def discard(self, sku: str) -> bool:
        return self._pending.pop(sku, None) is not None

    def clear(self):
        self._pending.clear()

    def grid(self, search: Optional[str] = None, limit: Optional[int] = 50) -> Dict[str, Any]:
        """录入表格视图（搜索只影响展示，不修改待提交集合）"""
        matches = self.catalog.search(search)
        shown = matches[:limit] if limit else matches

        rows = []
        for record in shown:
            update = self._pending.get(record.sku)
            if update is not None:
                status = STATUS_PENDING
            elif record.has_hpp:
                status = STATUS_SET
            else:
                status = STATUS_NOT_SET
            rows.append({
                'record': record,
                'new_hpp': update.hpp if update is not None else None,
                'status': status,
            })

        return {
            'rows': rows,
            'total_matches': len(matches),
            'truncated': len(matches) > len(shown),
            'pending_count': self.pending_count,
        }
