import json
from datetime import datetime
from decimal import Decimal

import pytest
import requests
from unittest.mock import Mock, patch

from profitdesk.config.settings import Settings
from profitdesk.data.amounts import parse_non_negative, percentage, plain, round_percent, to_decimal
from profitdesk.data.connectors import BackendConnector, BackendError
from profitdesk.data.mock_repository import (
    MockBackend, MockCatalogRepository, MockCostBasisRepository, MockOrderRepository
)
from profitdesk.data.repositories import (
    CatalogRepository, CostBasisRepository, OrderRepository, parse_order, parse_timestamp
)


class TestAmounts:
    """测试金额工具"""

    def test_to_decimal(self):
        assert to_decimal('12.50') == Decimal('12.50')
        assert to_decimal(0.1) == Decimal('0.1')
        assert to_decimal(' 7 ') == Decimal('7')
        assert to_decimal('abc') is None
        assert to_decimal(True) is None
        assert to_decimal(float('nan')) is None

    def test_parse_non_negative(self):
        assert parse_non_negative('0') == Decimal('0')
        assert parse_non_negative('-1') is None
        assert parse_non_negative('') is None

    def test_percentage_undefined_for_non_positive_whole(self):
        assert percentage(Decimal('5'), Decimal('0')) is None
        assert percentage(Decimal('5'), Decimal('-10')) is None
        assert percentage(None, Decimal('10')) is None
        assert percentage(Decimal('5'), Decimal('20')) == Decimal('25')

    def test_round_percent_half_up(self):
        """四舍五入（0.5进位）"""
        assert round_percent(Decimal('12.345')) == Decimal('12.35')
        assert round_percent(Decimal('-12.345')) == Decimal('-12.35')
        assert round_percent(Decimal('30')) == Decimal('30.00')
        assert round_percent(None) is None

    def test_plain(self):
        assert plain(Decimal('125000.00')) == '125000'
        assert plain(Decimal('0.50')) == '0.5'
        assert plain(Decimal('-0')) == '0'
        assert plain(None) == ''
        assert plain(3) == '3'


class TestBackendConnector:
    """测试后端连接器"""

    @pytest.fixture
    def connector(self):
        settings = Mock(base_url='http://backend:3016', api_token='secret', timeout=5)
        connector = BackendConnector(settings)
        connector._session = Mock()
        return connector

    def _response(self, status_code=200, payload=None):
        response = Mock()
        response.status_code = status_code
        response.ok = status_code < 400
        response.content = b'{}' if payload is not None else b''
        response.json.return_value = payload
        return response

    def test_get_drops_empty_params(self, connector):
        connector._session.request.return_value = self._response(payload={'skus': []})

        result = connector.get('/order-items/skus', {'search': None, 'limit': 10, 'q': ''})

        assert result == {'skus': []}
        connector._session.request.assert_called_once_with(
            'GET', 'http://backend:3016/order-items/skus', params={'limit': 10}, json=None, timeout=5
        )

    def test_error_status(self, connector):
        """非2xx响应抛出 BackendError"""
        connector._session.request.return_value = self._response(401, {'message': 'token expired'})

        with pytest.raises(BackendError) as exc_info:
            connector.post('/order-items/hpp/bulk-update', json={'items': []})

        assert exc_info.value.status_code == 401
        assert str(exc_info.value) == 'token expired'

    def test_network_error(self, connector):
        connector._session.request.side_effect = requests.ConnectionError('refused')

        with pytest.raises(BackendError):
            connector.get('/order-items/skus')

    def test_session_sets_bearer_token(self):
        connector = BackendConnector(Mock(base_url='http://backend', api_token='tkn', timeout=5))

        assert connector.session.headers['Authorization'] == 'Bearer tkn'
        connector.close()
        assert connector._session is None


class TestRepositories:
    """测试后端数据仓库"""

    def test_parse_timestamp(self):
        assert parse_timestamp('2024-05-01T10:30:00') == datetime(2024, 5, 1, 10, 30)
        assert parse_timestamp('2024-05-01T10:30:00+07:00') == datetime(2024, 5, 1, 10, 30)
        assert parse_timestamp('not a date') is None
        assert parse_timestamp(None) is None

    def test_parse_order(self):
        """缺失的HPP保持为None"""
        order = parse_order({
            'orderSn': 'SN1',
            'orderStatus': 'COMPLETED',
            'orderDate': '2024-05-01T10:00:00',
            'items': [
                {'sku': 'A1', 'itemName': 'Kemeja', 'quantity': 2, 'unitPrice': '125000', 'hpp': '68000'},
                {'sku': 'B2', 'quantity': 1, 'unitPrice': 49000, 'hpp': None},
            ],
            'fees': {'commissionFee': '6000', 'shippingFee': 2500},
        })

        assert order.order_sn == 'SN1'
        assert order.items[0].hpp == Decimal('68000')
        assert order.items[1].hpp is None
        assert order.items[1].order_sn == 'SN1'
        assert order.fees.total == Decimal('8500')

    def test_parse_order_decimal_quantity_strings(self):
        """数量为 "2.0" 之类的字符串也能解析"""
        order = parse_order({
            'orderSn': 'SN2',
            'items': [
                {'sku': 'A1', 'quantity': '2.0', 'unitPrice': '1000'},
                {'sku': 'B2', 'quantity': 3.0, 'unitPrice': '1000'},
                {'sku': 'C3', 'quantity': 'n/a', 'unitPrice': '1000'},
            ],
        })

        assert [item.quantity for item in order.items] == [2, 3, 0]

    def test_catalog_repository_decimal_counts(self):
        db = Mock()
        db.get.return_value = {'skus': [
            {'sku': 'A1', 'totalOrders': '3.0', 'totalQuantity': '5.00', 'totalRevenue': '1'},
        ]}

        record = CatalogRepository(db).list_skus()[0]

        assert record.total_orders == 3
        assert record.total_quantity == 5

    def test_catalog_repository(self):
        db = Mock()
        db.get.return_value = {'skus': [
            {'sku': 'A1', 'itemName': 'Kemeja', 'totalOrders': 3, 'totalQuantity': 5,
             'totalRevenue': '625000', 'currentHpp': None},
        ]}

        skus = CatalogRepository(db).list_skus()

        db.get.assert_called_once_with('/order-items/skus')
        assert skus[0].sku == 'A1'
        assert skus[0].current_hpp is None
        assert skus[0].total_revenue == Decimal('625000')

    def test_cost_basis_repository(self):
        db = Mock()
        db.post.return_value = {'success': True, 'updated': 1}
        payload = {'items': [{'sku': 'A1', 'hpp': 1}]}

        result = CostBasisRepository(db).bulk_update(payload)

        db.post.assert_called_once_with('/order-items/hpp/bulk-update', json=payload)
        assert result['updated'] == 1

    def test_order_repository_params(self):
        db = Mock()
        db.get.return_value = {'orders': []}

        OrderRepository(db).get_orders('all', datetime(2024, 5, 1), datetime(2024, 5, 31, 23, 59))

        db.get.assert_called_once_with('/order-items/pnl', {
            'orderStatus': None, 'startDate': '2024-05-01', 'endDate': '2024-05-31'
        })

    def test_get_single_order(self):
        db = Mock()
        db.get.return_value = {
            'order': {'orderStatus': 'PENDING', 'shopName': 'Toko'},
            'itemDetails': [{'sku': 'A1', 'quantity': 1, 'unitPrice': 1000}],
            'orderCosts': {'serviceFee': 100},
        }

        order = OrderRepository(db).get_order('SN9')

        assert order.order_sn == 'SN9'
        assert order.shop_name == 'Toko'
        assert len(order.items) == 1
        assert order.fees.service_fee == Decimal('100')


class TestMockRepositories:
    """测试模拟数据仓库"""

    @pytest.fixture
    def backend(self):
        return MockBackend(days=10, now=datetime(2024, 6, 1, 12))

    def test_catalog_contains_unset_hpp(self, backend):
        skus = MockCatalogRepository(backend).list_skus()

        assert any(not r.has_hpp for r in skus)
        assert all(r.total_orders > 0 for r in skus)

    def test_bulk_update_then_orders_reflect_hpp(self, backend):
        """写入HPP后订单读取到新值"""
        result = MockCostBasisRepository(backend).bulk_update(
            {'items': [{'sku': 'TSH-010-BLK', 'hpp': 20000}]}
        )

        assert result['success'] is True
        orders = MockOrderRepository(backend).get_orders()
        hpps = {item.hpp for o in orders for item in o.items if item.sku == 'TSH-010-BLK'}
        assert hpps == {Decimal('20000')}

    def test_bulk_update_rejects_unknown_sku(self, backend):
        result = MockCostBasisRepository(backend).bulk_update({'items': [{'sku': 'NOPE', 'hpp': 1}]})

        assert result['success'] is False
        assert result['failed'][0]['sku'] == 'NOPE'
        assert backend.submissions == []

    def test_status_filter(self, backend):
        repo = MockOrderRepository(backend)

        completed = repo.get_orders('COMPLETED')
        pending = repo.get_orders('PENDING')

        assert completed and pending
        assert len(completed) + len(pending) == len(repo.get_orders('all'))
        assert repo.get_order('missing') is None


class TestSettings:
    """测试配置"""

    def test_file_values_and_env_override(self, tmp_path):
        config_file = tmp_path / 'config.json'
        config_file.write_text(json.dumps({
            'BACKEND_API_URL': 'http://backend:3016/',
            'GRID_PAGE_SIZE': 20,
            'REQUIRE_KNOWN_SKUS': False,
        }))

        with patch.dict('os.environ', {'DAILY_TREND_BUCKETS': '14'}):
            settings = Settings(str(config_file), setup_logging=False)

        assert settings.backend.base_url == 'http://backend:3016'
        assert settings.reports.grid_page_size == 20
        assert settings.reports.daily_trend_buckets == 14
        assert settings.reports.require_known_skus is False

    def test_defaults_when_file_missing(self, tmp_path):
        with patch.dict('os.environ', {}, clear=True):
            settings = Settings(str(tmp_path / 'missing.json'), setup_logging=False)

        assert settings.reports.daily_trend_buckets == 30
        assert settings.app.use_mock_data is False
        assert settings.reports.session_idle_minutes == 120
        assert settings.has_backend() is True

    def test_mock_mode(self, tmp_path):
        with patch.dict('os.environ', {'USE_MOCK_DATA': 'true'}):
            settings = Settings(str(tmp_path / 'missing.json'), setup_logging=False)

        assert settings.has_backend() is False

    def test_invalid_numbers_fall_back_to_defaults(self, tmp_path):
        """非法的正整数配置回退到默认值"""
        config_file = tmp_path / 'config.json'
        config_file.write_text(json.dumps({'GRID_PAGE_SIZE': 0, 'API_PORT': 'abc'}))

        with patch.dict('os.environ', {}, clear=True):
            settings = Settings(str(config_file), setup_logging=False)

        assert settings.reports.grid_page_size == 50
        assert settings.app.port == 8000

    def test_non_object_config_ignored(self, tmp_path):
        config_file = tmp_path / 'config.json'
        config_file.write_text('[1, 2, 3]')

        with patch.dict('os.environ', {}, clear=True):
            settings = Settings(str(config_file), setup_logging=False)

        assert settings.backend.base_url == 'http://localhost:3016'
