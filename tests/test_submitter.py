from decimal import Decimal

import pytest
from unittest.mock import Mock

from profitdesk.data.connectors import BackendError
from profitdesk.data.models import CostBasisUpdate, SkuRecord
from profitdesk.engine.catalog import CatalogIndex
from profitdesk.engine.errors import PreconditionError, SubmissionError
from profitdesk.engine.submitter import BatchSubmitter


@pytest.fixture
def catalog():
    return CatalogIndex(Mock(), skus=[
        SkuRecord(sku='A1', item_name='Kemeja Flanel', current_hpp=Decimal('55000')),
        SkuRecord(sku='B2', item_name='', current_hpp=None),
    ])


@pytest.fixture
def store():
    store = Mock()
    store.bulk_update.return_value = {'success': True, 'updated': 2, 'message': '2 SKUs updated'}
    return store


@pytest.fixture
def pending():
    return {
        'B2': CostBasisUpdate(sku='B2', hpp=Decimal('12500.5'), item_name='Kaos Polos'),
        'A1': CostBasisUpdate(sku='A1', hpp=Decimal('60000')),
    }


class TestBatchSubmitter:
    """测试HPP批量提交"""

    def test_build_payload(self, store, catalog, pending):
        """请求体按SKU排序，商品名优先取目录"""
        payload = BatchSubmitter(store, catalog).build_payload(pending, '  revisi Mei  ')

        assert payload == {
            'items': [
                {'sku': 'A1', 'hpp': 60000, 'itemName': 'Kemeja Flanel'},
                {'sku': 'B2', 'hpp': 12500.5, 'itemName': 'Kaos Polos'},
            ],
            'notes': 'revisi Mei',
        }

    def test_blank_notes_omitted(self, store, catalog, pending):
        payload = BatchSubmitter(store, catalog).build_payload(pending, '   ')

        assert 'notes' not in payload

    def test_submit_success(self, store, catalog, pending):
        """提交成功返回结果"""
        outcome = BatchSubmitter(store, catalog).submit(pending, 'batch 1')

        store.bulk_update.assert_called_once()
        assert outcome.updated_count == 2
        assert outcome.skus == ['A1', 'B2']
        assert outcome.notes == 'batch 1'
        assert outcome.message == '2 SKUs updated'

    def test_empty_batch_rejected(self, store, catalog):
        """空集合不调用后端"""
        with pytest.raises(PreconditionError):
            BatchSubmitter(store, catalog).submit({})

        store.bulk_update.assert_not_called()

    def test_unknown_sku_rejected(self, store, catalog, pending):
        """目录外SKU在提交前被拦截"""
        pending['Z9'] = CostBasisUpdate(sku='Z9', hpp=Decimal('1'))

        with pytest.raises(PreconditionError) as exc_info:
            BatchSubmitter(store, catalog).submit(pending)

        assert 'Z9' in str(exc_info.value)
        store.bulk_update.assert_not_called()

    def test_unknown_sku_allowed_when_configured(self, store, catalog, pending):
        pending['Z9'] = CostBasisUpdate(sku='Z9', hpp=Decimal('1'))

        BatchSubmitter(store, catalog, require_known_skus=False).submit(pending)

        store.bulk_update.assert_called_once()

    def test_backend_error(self, store, catalog, pending):
        """后端异常转换为 SubmissionError"""
        store.bulk_update.side_effect = BackendError('Unauthorized', status_code=401)

        with pytest.raises(SubmissionError) as exc_info:
            BatchSubmitter(store, catalog).submit(pending)

        assert 'Unauthorized' in str(exc_info.value)

    def test_per_sku_rejections(self, store, catalog, pending):
        """逐SKU失败信息原样返回"""
        store.bulk_update.return_value = {
            'success': False,
            'message': '1 items rejected',
            'failed': [{'sku': 'B2', 'error': 'SKU not found'}],
        }

        with pytest.raises(SubmissionError) as exc_info:
            BatchSubmitter(store, catalog).submit(pending)

        assert exc_info.value.rejected == {'B2': 'SKU not found'}

    def test_results_entries_only_failures_rejected(self, store, catalog, pending):
        store.bulk_update.return_value = {
            'results': [
                {'sku': 'A1', 'success': True},
                {'sku': 'B2', 'success': False, 'error': 'locked'},
            ],
        }

        with pytest.raises(SubmissionError) as exc_info:
            BatchSubmitter(store, catalog).submit(pending)

        assert exc_info.value.rejected == {'B2': 'locked'}

    def test_unsuccessful_response(self, store, catalog, pending):
        store.bulk_update.return_value = {'success': False, 'error': 'database unavailable'}

        with pytest.raises(SubmissionError) as exc_info:
            BatchSubmitter(store, catalog).submit(pending)

        assert str(exc_info.value) == 'database unavailable'
        assert exc_info.value.rejected == {}
