"""报表导出（逗号分隔文本）

注意：文本字段（SKU、商品名）中的逗号不会被转义或加引号，
包含逗号的商品名会导致该行列数错位。下游使用方目前依赖这一格式，修改前需确认。
"""
import io
import logging
from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ..data.amounts import plain, round_percent
from ..data.models import OrderCostSummary, ProductRollup

logger = logging.getLogger(__name__)

DELIMITER = ','
LINE_SEPARATOR = '\n'


@dataclass
class Column:
    """导出列定义"""
    header: str
    getter: Callable[[Any], Any]
    kind: str = 'text'  # text / amount / percent / date
    missing: str = ''


def _attr(name: str) -> Callable[[Any], Any]:
    return lambda row: getattr(row, name)


def format_cell(value: Any, kind: str = 'text', missing: str = '') -> str:
    """格式化单元格"""
    if value is None:
        return missing
    if kind == 'percent':
        return format(round_percent(Decimal(value)), 'f')
    if kind == 'amount':
        return plain(value)
    if kind == 'date':
        if isinstance(value, datetime):
            return value.strftime('%Y-%m-%d')
        if isinstance(value, date):
            return value.isoformat()
        return str(value)
    if isinstance(value, (Decimal, float)) and not isinstance(value, bool):
        return plain(value)
    return str(value)


def to_delimited_text(rows: Iterable[Any], columns: Sequence[Column],
                      title_lines: Optional[Sequence[Sequence[Any]]] = None) -> str:
    """按列定义输出逗号分隔文本（首行为表头）"""
    lines = []
    for title in title_lines or []:
        lines.append(DELIMITER.join(str(part) for part in title))

    lines.append(DELIMITER.join(column.header for column in columns))
    for row in rows:
        lines.append(DELIMITER.join(
            format_cell(column.getter(row), column.kind, column.missing) for column in columns
        ))
    return LINE_SEPARATOR.join(lines)


def read_delimited_text(text: str, skip_lines: int = 0) -> List[Dict[str, str]]:
    """解析导出的文本（跳过前 skip_lines 行标题），所有单元格保留为字符串"""
    df = pd.read_csv(io.StringIO(text), skiprows=skip_lines, dtype=str, keep_default_na=False)
    return df.to_dict('records')


PRODUCT_REPORT_COLUMNS = [
    Column('SKU', _attr('sku')),
    Column('Product Name', _attr('item_name')),
    Column('Quantity Sold', _attr('total_quantity_sold')),
    Column('Revenue', _attr('total_revenue'), 'amount'),
    Column('Cost', _attr('total_cost'), 'amount'),
    Column('Gross Profit', _attr('gross_profit'), 'amount'),
    Column('Margin %', _attr('gross_margin'), 'percent'),
    Column('Avg Price', _attr('avg_selling_price'), 'amount'),
    Column('Avg HPP', _attr('avg_hpp'), 'amount'),
    Column('Orders', _attr('total_orders')),
]

PNL_REPORT_COLUMNS = [
    Column('No. Pesanan', _attr('order_sn')),
    Column('Status', _attr('order_status')),
    Column('Tanggal Pesanan', _attr('order_date'), 'date'),
    Column('Tanggal Pembayaran', _attr('payment_date'), 'date'),
    Column('Pendapatan', _attr('total_revenue'), 'amount'),
    Column('Biaya', _attr('total_product_cost'), 'amount'),
    Column('Laba Kotor', _attr('gross_profit'), 'amount'),
    Column('Total Fee', _attr('total_fees'), 'amount'),
    Column('Laba Bersih', _attr('net_profit'), 'amount'),
    Column('Margin Kotor %', _attr('gross_margin'), 'percent'),
    Column('Margin Bersih %', _attr('net_margin'), 'percent'),
    Column('Item', _attr('item_count')),
]

ORDER_ITEM_COLUMNS = [
    Column('SKU', _attr('sku')),
    Column('Product Name', _attr('item_name')),
    Column('Quantity', _attr('quantity')),
    Column('Unit Price', _attr('unit_price'), 'amount'),
    Column('Revenue', _attr('revenue'), 'amount'),
    Column('HPP', _attr('hpp'), 'amount'),
    Column('Cost', _attr('total_cost'), 'amount'),
    Column('Profit', _attr('gross_profit'), 'amount'),
    Column('Margin %', _attr('margin'), 'percent'),
]


def product_report_to_text(products: Iterable[ProductRollup]) -> str:
    return to_delimited_text(products, PRODUCT_REPORT_COLUMNS)


def pnl_report_to_text(summaries: Iterable[OrderCostSummary]) -> str:
    return to_delimited_text(summaries, PNL_REPORT_COLUMNS)


def order_detail_to_text(summary: OrderCostSummary) -> str:
    """订单成本明细导出（分段格式，标题行不用于机器解析）"""
    header = [
        ['Order Cost Breakdown Report'],
        ['Order SN', summary.order_sn],
        ['Order Status', summary.order_status],
        ['Order Date', format_cell(summary.order_date, 'date')],
        ['Shop', summary.shop_name],
        [''],
        ['Item Details'],
    ]
    items_block = to_delimited_text(summary.items, ORDER_ITEM_COLUMNS, title_lines=header)

    fees = summary.fees
    costs = [
        ('Total Revenue', summary.total_revenue, 'amount'),
        ('Product Cost', summary.total_product_cost, 'amount'),
        ('Commission Fee', fees.commission_fee, 'amount'),
        ('Service Fee', fees.service_fee, 'amount'),
        ('Transaction Fee', fees.transaction_fee, 'amount'),
        ('Shipping Fee', fees.shipping_fee, 'amount'),
        ('Payment Channel Fee', fees.payment_channel_fee, 'amount'),
        ('Gross Profit', summary.gross_profit, 'amount'),
        ('Net Profit', summary.net_profit, 'amount'),
        ('Gross Margin %', summary.gross_margin, 'percent'),
        ('Net Margin %', summary.net_margin, 'percent'),
    ]
    lines = [items_block, '', 'Order Level Costs']
    for label, value, kind in costs:
        lines.append(DELIMITER.join([label, format_cell(value, kind)]))
    return LINE_SEPARATOR.join(lines)
