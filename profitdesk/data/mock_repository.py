# profitdesk/data/mock_repository.py
import logging
from copy import deepcopy
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any

from .amounts import ZERO, to_decimal
from .models import SkuRecord, Order, OrderItem, PlatformFees

logger = logging.getLogger(__name__)


# (sku, 商品名, 单价, 初始HPP)
MOCK_PRODUCTS = [
    ('KMJ-001-BLK', 'Kemeja Flanel Hitam', Decimal('125000'), Decimal('68000')),
    ('KMJ-001-NVY', 'Kemeja Flanel Navy', Decimal('125000'), Decimal('68000')),
    ('TSH-010-WHT', 'Kaos Polos Putih', Decimal('49000'), Decimal('21500')),
    ('TSH-010-BLK', 'Kaos Polos Hitam', Decimal('49000'), None),
    ('CLN-220-KHK', 'Celana Chino Khaki', Decimal('159000'), Decimal('97000')),
    ('TOP-005-MIX', 'Topi Baseball', Decimal('35000'), Decimal('33800')),
    ('KAU-777-GRY', 'Kaus Kaki Abu', Decimal('15000'), None),
]


class MockBackend:
    """内存模拟后端（用于开发和演示）"""

    def __init__(self, days: int = 45, now: Optional[datetime] = None):
        self.hpp: Dict[str, Optional[Decimal]] = {sku: hpp for sku, _, _, hpp in MOCK_PRODUCTS}
        self.names = {sku: name for sku, name, _, _ in MOCK_PRODUCTS}
        self.orders = self._generate_orders(days, now or datetime.now())
        self.submissions: List[Dict[str, Any]] = []

    @staticmethod
    def _generate_orders(days: int, now: datetime) -> List[Order]:
        """生成确定性的模拟订单"""
        orders = []
        start = (now - timedelta(days=days)).replace(hour=10, minute=0, second=0, microsecond=0)

        for i in range(days * 2):
            order_date = start + timedelta(hours=12 * i)
            order_sn = f'2409{i:06d}MOCK'
            items = []
            for j in range(1 + i % 3):
                sku, name, price, _ = MOCK_PRODUCTS[(i + j * 2) % len(MOCK_PRODUCTS)]
                items.append(OrderItem(
                    order_sn=order_sn,
                    sku=sku,
                    item_name=name,
                    quantity=1 + (i + j) % 2,
                    unit_price=price,
                    order_date=order_date,
                ))
            revenue = sum((item.unit_price * item.quantity for item in items), ZERO)
            orders.append(Order(
                order_sn=order_sn,
                order_status='COMPLETED' if order_date < now - timedelta(days=3) else 'PENDING',
                order_date=order_date,
                payment_date=order_date + timedelta(minutes=30),
                shop_name='Toko Demo',
                total_amount=revenue,
                items=items,
                fees=PlatformFees(
                    commission_fee=(revenue * Decimal('0.05')).quantize(Decimal('1')),
                    service_fee=(revenue * Decimal('0.02')).quantize(Decimal('1')),
                    transaction_fee=Decimal('1000'),
                    shipping_fee=Decimal('0') if i % 4 else Decimal('5000'),
                    payment_channel_fee=Decimal('0'),
                ),
            ))
        return orders

    def resolved_orders(self) -> List[Order]:
        """返回带有当前HPP的订单副本"""
        orders = deepcopy(self.orders)
        for order in orders:
            for item in order.items:
                item.hpp = self.hpp.get(item.sku)
        return orders


class MockCatalogRepository:
    """模拟SKU目录仓库"""

    def __init__(self, backend: Optional[MockBackend] = None):
        logger.info("Using mock catalog repository (no backend connection)")
        self.db = None  # 兼容接口
        self.backend = backend or MockBackend()

    def list_skus(self) -> List[SkuRecord]:
        """根据模拟订单汇总SKU数据"""
        stats: Dict[str, SkuRecord] = {}
        order_sets: Dict[str, set] = {}

        for order in self.backend.orders:
            for item in order.items:
                record = stats.get(item.sku)
                if record is None:
                    record = SkuRecord(sku=item.sku, item_name=self.backend.names.get(item.sku, item.item_name))
                    stats[item.sku] = record
                    order_sets[item.sku] = set()
                record.total_quantity += item.quantity
                record.total_revenue += item.unit_price * item.quantity
                order_sets[item.sku].add(order.order_sn)

        for sku, record in stats.items():
            record.total_orders = len(order_sets[sku])
            record.current_hpp = self.backend.hpp.get(sku)

        return sorted(stats.values(), key=lambda r: r.total_revenue, reverse=True)


class MockCostBasisRepository:
    """模拟HPP写入仓库"""

    def __init__(self, backend: Optional[MockBackend] = None):
        logger.info("Using mock cost basis repository (no backend connection)")
        self.db = None  # 兼容接口
        self.backend = backend or MockBackend()

    def bulk_update(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """更新内存中的HPP表"""
        items = payload.get('items', [])
        failed = []
        for item in items:
            hpp = to_decimal(item.get('hpp'))
            if hpp is None or hpp < ZERO:
                failed.append({'sku': item.get('sku'), 'error': 'invalid hpp'})
                continue
            if item.get('sku') not in self.backend.hpp:
                failed.append({'sku': item.get('sku'), 'error': 'SKU not found'})

        if failed:
            return {'success': False, 'message': f'{len(failed)} items rejected', 'failed': failed}

        for item in items:
            self.backend.hpp[item['sku']] = to_decimal(item['hpp'])
            if item.get('itemName'):
                self.backend.names[item['sku']] = item['itemName']

        self.backend.submissions.append(deepcopy(payload))
        logger.info(f"Mock HPP update applied to {len(items)} SKUs")
        return {'success': True, 'updated': len(items), 'message': f'{len(items)} SKUs updated'}


class MockOrderRepository:
    """模拟订单数据仓库"""

    def __init__(self, backend: Optional[MockBackend] = None):
        logger.info("Using mock order repository (no backend connection)")
        self.db = None  # 兼容接口
        self.backend = backend or MockBackend()

    def get_orders(self, order_status: Optional[str] = None, start_date: Optional[datetime] = None,
                   end_date: Optional[datetime] = None) -> List[Order]:
        """按状态和日期过滤模拟订单"""
        orders = []
        for order in self.backend.resolved_orders():
            if order_status and order_status != 'all':
                if order_status == 'COMPLETED' and order.order_status != 'COMPLETED':
                    continue
                if order_status != 'COMPLETED' and order.order_status == 'COMPLETED':
                    continue
            if start_date and order.order_date and order.order_date.date() < start_date.date():
                continue
            if end_date and order.order_date and order.order_date.date() > end_date.date():
                continue
            orders.append(order)
        return orders

    def get_order(self, order_sn: str) -> Optional[Order]:
        for order in self.backend.resolved_orders():
            if order.order_sn == order_sn:
                return order
        return None
