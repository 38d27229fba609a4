import logging
from typing import Any, Dict, List, Mapping, Optional

from ..data.amounts import to_json_number
from ..data.connectors import BackendError
from ..data.models import CostBasisUpdate, SubmissionOutcome
from .catalog import CatalogIndex
from .errors import PreconditionError, SubmissionError

logger = logging.getLogger(__name__)


class BatchSubmitter:
    """HPP批量提交

    把待提交集合整体发送给后端，不做部分重试；
    提交成功后刷新目录、清空会话由调用方负责。
    """

    def __init__(self, store, catalog: Optional[CatalogIndex] = None, require_known_skus: bool = True):
        self.store = store
        self.catalog = catalog
        self.require_known_skus = require_known_skus

    def build_payload(self, pending: Mapping[str, CostBasisUpdate], notes: Optional[str] = None) -> Dict[str, Any]:
        """构造批量更新请求体（按SKU排序）"""
        items = []
        for sku in sorted(pending):
            update = pending[sku]
            item = {'sku': sku, 'hpp': to_json_number(update.hpp)}

            record = self.catalog.get(sku) if self.catalog is not None else None
            item_name = record.item_name if record is not None and record.item_name else update.item_name
            if item_name:
                item['itemName'] = item_name
            items.append(item)

        payload: Dict[str, Any] = {'items': items}
        if notes and notes.strip():
            payload['notes'] = notes.strip()
        return payload

    def submit(self, pending: Mapping[str, CostBasisUpdate], notes: Optional[str] = None) -> SubmissionOutcome:
        """提交待更新的HPP"""
        if not pending:
            raise PreconditionError("Nothing to submit: enter at least one HPP value")

        if self.require_known_skus and self.catalog is not None:
            unknown = sorted(sku for sku in pending if sku not in self.catalog)
            if unknown:
                raise PreconditionError(f"Unknown SKUs in batch: {', '.join(unknown)}")

        payload = self.build_payload(pending, notes)
        skus = [item['sku'] for item in payload['items']]

        try:
            response = self.store.bulk_update(payload)
        except BackendError as e:
            logger.error(f"HPP bulk update rejected: {e}")
            raise SubmissionError(str(e), _rejections(e.payload)) from e

        rejected = _rejections(response)
        if rejected:
            logger.error(f"HPP bulk update rejected {len(rejected)} of {len(skus)} SKUs")
            raise SubmissionError(_response_message(response) or f"{len(rejected)} SKUs rejected", rejected)

        if isinstance(response, dict) and response.get('success') is False:
            message = _response_message(response) or "HPP bulk update failed"
            logger.error(f"HPP bulk update failed: {message}")
            raise SubmissionError(message)

        updated = response.get('updated') if isinstance(response, dict) else None
        outcome = SubmissionOutcome(
            updated_count=int(updated) if isinstance(updated, int) else len(skus),
            skus=skus,
            notes=payload.get('notes'),
            message=_response_message(response) or f"{len(skus)} SKUs updated",
        )
        logger.info(f"HPP bulk update accepted for {outcome.updated_count} SKUs")
        return outcome


def _response_message(response: Any) -> Optional[str]:
    if isinstance(response, dict):
        message = response.get('message') or response.get('error')
        return str(message) if message else None
    return None


def _rejections(response: Any) -> Dict[str, str]:
    """提取后端返回的逐SKU失败信息"""
    if not isinstance(response, dict):
        return {}

    rejected = {}
    for key in ('failed', 'errors', 'results'):
        entries: List[Any] = response.get(key) if isinstance(response.get(key), list) else []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get('sku'):
                continue
            if entry.get('success') is True:
                continue
            # results 中只有明确失败的条目才算拒绝
            if key == 'results' and entry.get('success') is not False and not entry.get('error'):
                continue
            rejected[str(entry['sku'])] = str(entry.get('error') or entry.get('message') or 'rejected')
    return rejected
