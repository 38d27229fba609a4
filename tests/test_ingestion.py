from decimal import Decimal

import pytest
from unittest.mock import Mock

from profitdesk.data.models import SkuRecord
from profitdesk.engine.catalog import CatalogIndex
from profitdesk.engine.errors import ParseError, ValidationError
from profitdesk.engine.ingestion import CostBasisSession
from profitdesk.reports.tabular import SkippedRow, ValidRow, from_tabular


@pytest.fixture
def catalog():
    repository = Mock()
    repository.list_skus.return_value = [
        SkuRecord(sku='A1', item_name='Kemeja Flanel', total_orders=4, total_quantity=6,
                  total_revenue=Decimal('600000'), current_hpp=Decimal('55000')),
        SkuRecord(sku='B2', item_name='Kaos Polos', total_orders=2, total_quantity=2,
                  total_revenue=Decimal('98000'), current_hpp=None),
        SkuRecord(sku='C3', item_name='Topi', total_orders=1, total_quantity=1,
                  total_revenue=Decimal('35000'), current_hpp=Decimal('0')),
    ]
    return CatalogIndex(repository)


@pytest.fixture
def session(catalog):
    return CostBasisSession(catalog)


class TestCatalogIndex:
    """测试SKU目录"""

    def test_load_from_repository(self, catalog):
        """初始化时从仓库读取"""
        assert len(catalog) == 3
        assert 'A1' in catalog
        assert 'Z9' not in catalog
        catalog.repository.list_skus.assert_called_once()

    def test_zero_hpp_counts_as_set(self, catalog):
        """HPP为0视为已设置"""
        assert catalog.get('C3').has_hpp is True
        assert [r.sku for r in catalog.skus_without_hpp()] == ['B2']

    def test_search_is_case_insensitive(self, catalog):
        """按SKU或商品名搜索"""
        assert [r.sku for r in catalog.search('kaos')] == ['B2']
        assert [r.sku for r in catalog.search('a1')] == ['A1']
        assert len(catalog.search('  ')) == 3

    def test_avg_price(self, catalog):
        assert catalog.get('A1').avg_price == Decimal('100000')
        assert SkuRecord(sku='X', item_name='').avg_price == Decimal('0')

    def test_preloaded_skus_skip_repository(self):
        repository = Mock()
        index = CatalogIndex(repository, skus=[SkuRecord(sku='A1', item_name='x')])

        assert len(index) == 1
        repository.list_skus.assert_not_called()


class TestManualEdit:
    """测试手工录入"""

    def test_valid_value(self, session):
        """合法值进入待提交集合"""
        update = session.apply_manual_edit('A1', '60000')

        assert update.hpp == Decimal('60000')
        assert update.source == 'manual'
        assert update.item_name == 'Kemeja Flanel'
        assert session.current_pending()['A1'].hpp == Decimal('60000')

    def test_last_write_wins(self, session):
        """同一SKU后写覆盖"""
        session.apply_manual_edit('A1', '60000')
        session.apply_manual_edit('A1', '61000.50')

        assert session.pending_count == 1
        assert session.current_pending()['A1'].hpp == Decimal('61000.50')

    @pytest.mark.parametrize('raw', ['abc', '-5', '', None, 'NaN', 'Infinity'])
    def test_invalid_value_rejected(self, session, raw):
        """非数字或负数被拒绝"""
        with pytest.raises(ValidationError) as exc_info:
            session.apply_manual_edit('A1', raw)

        assert exc_info.value.sku == 'A1'
        assert session.pending_count == 0

    def test_same_value_twice_is_idempotent(self, session):
        """同一SKU重复录入相同值只保留一条"""
        session.apply_manual_edit('A1', '60000')
        session.apply_manual_edit('A1', '60000')

        assert session.pending_count == 1
        assert session.current_pending()['A1'].hpp == Decimal('60000')

    def test_invalid_value_discards_previous_entry(self, session):
        """无效输入会移除已有的待提交值"""
        session.apply_manual_edit('A1', '60000')

        with pytest.raises(ValidationError):
            session.apply_manual_edit('A1', 'abc')

        assert 'A1' not in session.current_pending()

    def test_zero_is_accepted(self, session):
        update = session.apply_manual_edit('B2', '0')

        assert update.hpp == Decimal('0')

    def test_negative_zero_normalized(self, session):
        update = session.apply_manual_edit('B2', '-0')

        assert update.hpp == Decimal('0')
        assert not update.hpp.is_signed()

    def test_pending_snapshot_is_a_copy(self, session):
        """快照修改不影响会话"""
        session.apply_manual_edit('A1', '1')
        snapshot = session.current_pending()
        snapshot.clear()

        assert session.pending_count == 1


class TestTabularUpload:
    """测试表格上传"""

    def test_skips_invalid_rows_silently(self, session):
        """缺少SKU或HPP无效的行被跳过"""
        rows = [
            {'SKU': 'A1', 'New HPP': '50000'},
            {'SKU': '', 'New HPP': '10'},
            {'SKU': 'B2', 'New HPP': ''},
        ]

        report = session.ingest_tabular_upload(rows)

        assert report.ingested == 1
        assert report.total_rows == 3
        assert report.skipped == 2
        assert list(session.current_pending()) == ['A1']
        assert session.current_pending()['A1'].hpp == Decimal('50000')

    def test_blank_sku_and_negative_rows_skipped(self, session):
        """空SKU和负数HPP的行不进入待提交集合"""
        rows = [
            {'SKU': 'A1', 'New HPP': '10000'},
            {'SKU': '', 'New HPP': '5000'},
            {'SKU': 'B2', 'New HPP': '-3'},
        ]

        report = session.ingest_tabular_upload(rows)

        assert report.ingested == 1
        assert {sku: u.hpp for sku, u in session.current_pending().items()} == {'A1': Decimal('10000')}

    def test_header_aliases(self, session):
        """支持小写别名表头"""
        report = session.ingest_tabular_upload([
            {'sku': 'A1', 'new_hpp': 1200},
            {'sku': 'B2', 'hpp': 2400.5},
        ])

        pending = session.current_pending()
        assert report.ingested == 2
        assert pending['A1'].hpp == Decimal('1200')
        assert pending['B2'].hpp == Decimal('2400.5')

    def test_merges_with_manual_edits(self, session):
        """上传与手工录入合并，同SKU以后者为准"""
        session.apply_manual_edit('A1', '100')
        session.apply_manual_edit('C3', '5')

        session.ingest_tabular_upload([{'SKU': 'A1', 'New HPP': '200'}])

        pending = session.current_pending()
        assert pending['A1'].hpp == Decimal('200')
        assert pending['A1'].source == 'spreadsheet-row 2'
        assert pending['C3'].hpp == Decimal('5')

    def test_duplicate_rows_last_wins(self, session):
        report = session.ingest_tabular_upload([
            {'SKU': 'A1', 'New HPP': '100'},
            {'SKU': 'A1', 'New HPP': '300'},
        ])

        assert report.ingested == 2
        assert report.skus == ['A1']
        assert session.current_pending()['A1'].hpp == Decimal('300')
        assert session.current_pending()['A1'].source == 'spreadsheet-row 3'

    def test_unknown_skus_reported(self, session):
        """目录外的SKU会被标记"""
        report = session.ingest_tabular_upload([
            {'SKU': 'Z9', 'New HPP': '100', 'Item Name': 'Baru'},
        ])

        assert report.unknown_skus == ['Z9']
        assert session.current_pending()['Z9'].item_name == 'Baru'

    def test_numeric_sku_from_excel(self):
        """Excel数字SKU不带小数点"""
        parsed = from_tabular([{'SKU': 12345.0, 'New HPP': 10}])

        assert isinstance(parsed[0], ValidRow)
        assert parsed[0].sku == '12345'

    def test_skip_reasons(self):
        parsed = from_tabular([
            {'SKU': None, 'New HPP': 10},
            {'SKU': 'A1', 'New HPP': -1},
            {'SKU': 'A1'},
        ])

        assert all(isinstance(row, SkippedRow) for row in parsed)
        assert parsed[0].reason == 'missing SKU'
        assert parsed[1].reason.startswith('invalid HPP')
        assert parsed[2].reason == 'missing HPP'

    def test_ingest_csv_file(self, session):
        """解析CSV文件"""
        content = b'SKU,Item Name,New HPP\nA1,Kemeja,45000\nB2,Kaos,\n'

        report = session.ingest_file(content, 'hpp.csv')

        assert report.total_rows == 2
        assert report.ingested == 1
        assert session.current_pending()['A1'].hpp == Decimal('45000')

    def test_empty_file_rejected(self, session):
        with pytest.raises(ParseError):
            session.ingest_file(b'', 'hpp.xlsx')

    def test_unreadable_file_rejected(self, session):
        """无法读取的文件抛出 ParseError 且不修改待提交集合"""
        session.apply_manual_edit('A1', '1')

        with pytest.raises(ParseError):
            session.ingest_file(b'not a workbook', 'hpp.xlsx')

        assert session.pending_count == 1


class TestGrid:
    """测试录入表格视图"""

    def test_row_status(self, session):
        session.apply_manual_edit('B2', '20000')

        grid = session.grid()
        status = {row['record'].sku: row['status'] for row in grid['rows']}

        assert status == {'A1': 'Set', 'B2': 'Pending', 'C3': 'Set'}
        assert grid['pending_count'] == 1

    def test_search_does_not_touch_pending(self, session):
        """搜索过滤只影响展示"""
        session.apply_manual_edit('A1', '1')
        session.apply_manual_edit('B2', '2')

        grid = session.grid('kaos')

        assert [row['record'].sku for row in grid['rows']] == ['B2']
        assert session.pending_count == 2

    def test_limit(self, session):
        grid = session.grid(limit=2)

        assert len(grid['rows']) == 2
        assert grid['total_matches'] == 3
        assert grid['truncated'] is True

    def test_discard_and_clear(self, session):
        session.apply_manual_edit('A1', '1')
        session.apply_manual_edit('B2', '2')

        assert session.discard('A1') is True
        assert session.discard('A1') is False
        session.clear()
        assert session.pending_count == 0
