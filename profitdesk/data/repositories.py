import logging
from typing import List, Optional, Dict, Any
from datetime import datetime
from decimal import Decimal
import pandas as pd

from .amounts import ZERO, to_decimal
from .connectors import BackendConnector
from .models import SkuRecord, Order, OrderItem, PlatformFees

logger = logging.getLogger(__name__)

FEE_FIELDS = {
    'commission_fee': 'commissionFee',
    'service_fee': 'serviceFee',
    'transaction_fee': 'transactionFee',
    'shipping_fee': 'shippingFee',
    'payment_channel_fee': 'paymentChannelFee',
}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """解析时间戳，无法解析时返回 None"""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = pd.to_datetime(value, unit='s', errors='coerce')
    else:
        ts = pd.to_datetime(value, errors='coerce')
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        # 保留原始时区的本地时间
        ts = ts.tz_localize(None)
    return ts.to_pydatetime()


def _amount(value: Any) -> Decimal:
    result = to_decimal(value)
    return result if result is not None else ZERO


def _count(value: Any, field: str) -> int:
    """解析数量字段（兼容 "2"、"2.0"、2.0），无法解析时记为0"""
    number = to_decimal(value)
    if number is None:
        if value not in (None, ""):
            logger.warning(f"Unparsable {field} {value!r}, counting it as 0")
        return 0
    if number != number.to_integral_value():
        logger.warning(f"Fractional {field} {value!r} truncated to {int(number)}")
    return int(number)


def _records(payload: Any, *keys: str) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


def parse_fees(raw: Optional[Dict[str, Any]]) -> PlatformFees:
    raw = raw or {}
    return PlatformFees(**{
        field_name: _amount(raw.get(key)) for field_name, key in FEE_FIELDS.items()
    })


def parse_order(raw: Dict[str, Any]) -> Order:
    """把后端订单JSON转换为模型对象"""
    order_sn = str(raw.get('orderSn') or '')
    order_date = parse_timestamp(raw.get('orderDate') or raw.get('createTime'))
    items = []
    for item in _records(raw.get('items') or raw.get('itemDetails') or []):
        items.append(OrderItem(
            order_sn=order_sn,
            sku=str(item.get('sku') or ''),
            item_name=item.get('itemName') or '',
            quantity=_count(item.get('quantity'), 'quantity'),
            unit_price=_amount(item.get('unitPrice')),
            hpp=to_decimal(item.get('hpp')),
            order_date=order_date,
        ))
    return Order(
        order_sn=order_sn,
        order_status=raw.get('orderStatus') or '',
        order_date=order_date,
        payment_date=parse_timestamp(raw.get('paymentDate')),
        shop_name=raw.get('shopName') or '',
        total_amount=to_decimal(raw.get('totalAmount')),
        items=items,
        fees=parse_fees(raw.get('fees') or raw.get('orderCosts')),
    )


class BaseRepository:
    """基础数据仓库类"""

    def __init__(self, db: Optional[BackendConnector] = None):
        self.db = db or BackendConnector()


class CatalogRepository(BaseRepository):
    """SKU目录数据仓库"""

    def list_skus(self) -> List[SkuRecord]:
        """获取SKU列表及销售汇总"""
        payload = self.db.get('/order-items/skus')

        skus = []
        for row in _records(payload, 'skus', 'data'):
            skus.append(SkuRecord(
                sku=str(row.get('sku') or ''),
                item_name=row.get('itemName') or '',
                total_orders=_count(row.get('totalOrders'), 'totalOrders'),
                total_quantity=_count(row.get('totalQuantity'), 'totalQuantity'),
                total_revenue=_amount(row.get('totalRevenue')),
                current_hpp=to_decimal(row.get('currentHpp')),
            ))

        logger.info(f"Loaded {len(skus)} SKUs from backend")
        return skus


class CostBasisRepository(BaseRepository):
    """HPP写入仓库"""

    def bulk_update(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """批量更新HPP"""
        logger.info(f"Submitting HPP bulk update with {len(payload.get('items', []))} items")
        result = self.db.post('/order-items/hpp/bulk-update', json=payload)
        return result if isinstance(result, dict) else {'data': result}


class OrderRepository(BaseRepository):
    """订单收入与费用数据仓库"""

    def get_orders(
            self,
            order_status: Optional[str] = None,
            start_date: Optional[datetime] = None,
            end_date: Optional[datetime] = None
    ) -> List[Order]:
        """获取订单及商品、费用明细"""
        params = {
            'orderStatus': order_status if order_status and order_status != 'all' else None,
            'startDate': start_date.date().isoformat() if start_date else None,
            'endDate': end_date.date().isoformat() if end_date else None,
        }
        payload = self.db.get('/order-items/pnl', params)

        orders = [parse_order(raw) for raw in _records(payload, 'orders', 'data')]
        logger.info(f"Loaded {len(orders)} orders from backend")
        return orders

    def get_order(self, order_sn: str) -> Optional[Order]:
        """获取单个订单成本明细"""
        payload = self.db.get(f'/reports/order/{order_sn}/costs')
        if not payload:
            return None

        raw = dict(payload.get('order') or {})
        raw.setdefault('orderSn', order_sn)
        raw['items'] = payload.get('itemDetails') or raw.get('items') or []
        raw['fees'] = payload.get('orderCosts') or raw.get('fees') or {}
        return parse_order(raw)
