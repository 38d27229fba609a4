# profitdesk/analytics/profitability.py
"""盈利指标计算

商品、订单、SKU、时间段四个粒度的毛利/净利计算。
HPP 未知时成本、利润、毛利率一律为 None，不会按 0 处理；
订单层面只要有一个商品缺少 HPP，整单的成本与利润都视为不可计算。
"""
import logging
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Union

from ..data.amounts import ZERO, percentage
from ..data.models import (
    Order,
    OrderItem,
    OrderItemRecord,
    OrderCostSummary,
    PlatformFees,
    PnLSummary,
    ProductReportSummary,
    ProductRollup,
    TimeBucketSummary,
)

logger = logging.getLogger(__name__)

COMPLETED = 'COMPLETED'
GRANULARITIES = ('daily', 'monthly')
DEFAULT_TREND_BUCKETS = 30


def compute_item_metrics(item: OrderItem) -> OrderItemRecord:
    """计算单个商品的收入、成本、毛利和毛利率"""
    revenue = item.unit_price * Decimal(item.quantity)

    if item.hpp is None:
        total_cost = gross_profit = margin = None
    else:
        total_cost = item.hpp * Decimal(item.quantity)
        gross_profit = revenue - total_cost
        margin = percentage(gross_profit, revenue)

    return OrderItemRecord(
        order_sn=item.order_sn,
        sku=item.sku,
        item_name=item.item_name,
        quantity=item.quantity,
        unit_price=item.unit_price,
        revenue=revenue,
        hpp=item.hpp,
        total_cost=total_cost,
        gross_profit=gross_profit,
        margin=margin,
        order_date=item.order_date,
    )


def compute_order_summary(
        order: Union[Order, Sequence[OrderItem]],
        fees: Optional[PlatformFees] = None
) -> OrderCostSummary:
    """汇总订单成本（商品成本全部已知时才计算利润）"""
    if isinstance(order, Order):
        source = order
        items = order.items
        fees = fees or order.fees
    else:
        items = list(order)
        source = Order(
            order_sn=items[0].order_sn if items else '',
            order_status='',
            order_date=items[0].order_date if items else None,
            items=items,
        )
    fees = fees or PlatformFees()

    records = [compute_item_metrics(item) for item in items]
    total_revenue = sum((r.revenue for r in records), ZERO)
    items_without_hpp = sum(1 for r in records if r.total_cost is None)
    has_all_hpp = items_without_hpp == 0
    total_fees = fees.total

    if has_all_hpp:
        total_product_cost = sum((r.total_cost for r in records), ZERO)
        gross_profit = total_revenue - total_product_cost
        net_profit = gross_profit - total_fees
        gross_margin = percentage(gross_profit, total_revenue)
        net_margin = percentage(net_profit, total_revenue)
    else:
        total_product_cost = gross_profit = net_profit = gross_margin = net_margin = None

    return OrderCostSummary(
        order_sn=source.order_sn,
        order_status=source.order_status,
        order_date=source.order_date,
        payment_date=source.payment_date,
        shop_name=source.shop_name,
        items=records,
        total_revenue=total_revenue,
        total_product_cost=total_product_cost,
        fees=fees,
        total_fees=total_fees,
        gross_profit=gross_profit,
        net_profit=net_profit,
        gross_margin=gross_margin,
        net_margin=net_margin,
        has_all_hpp=has_all_hpp,
        items_without_hpp=items_without_hpp,
    )


def filter_orders(summaries: Iterable[OrderCostSummary], status: Optional[str] = 'all') -> List[OrderCostSummary]:
    """按订单状态过滤：all / COMPLETED / PENDING（非COMPLETED）"""
    if not status or status == 'all':
        return list(summaries)
    if status == COMPLETED:
        return [s for s in summaries if s.order_status == COMPLETED]
    return [s for s in summaries if s.order_status != COMPLETED]


def summarize_orders(summaries: Sequence[OrderCostSummary]) -> PnLSummary:
    """汇总损益报表

    收入与订单数覆盖全部订单；成本、利润和整体毛利率只统计HPP完整的订单。
    """
    summary = PnLSummary()
    complete_revenue = ZERO

    for s in summaries:
        summary.total_orders += 1
        summary.total_revenue += s.total_revenue
        summary.total_fees += s.total_fees
        if s.order_status == COMPLETED:
            summary.completed_orders += 1
        else:
            summary.pending_orders += 1

        if not s.has_all_hpp:
            summary.orders_without_hpp += 1
            continue

        complete_revenue += s.total_revenue
        summary.total_cost += s.total_product_cost
        summary.total_gross_profit += s.gross_profit
        summary.total_net_profit += s.net_profit

    summary.overall_gross_margin = percentage(summary.total_gross_profit, complete_revenue)
    summary.overall_net_margin = percentage(summary.total_net_profit, complete_revenue)
    return summary


def _bucket_key(moment: datetime, granularity: str) -> date:
    day = moment.date() if isinstance(moment, datetime) else moment
    if granularity == 'monthly':
        return day.replace(day=1)
    return day


def bucket_by_time(
        summaries: Iterable[OrderCostSummary],
        granularity: str = 'daily',
        window_end: Optional[datetime] = None,
        max_buckets: Optional[int] = DEFAULT_TREND_BUCKETS,
        window_start: Optional[datetime] = None
) -> List[TimeBucketSummary]:
    """按日/月分组汇总，按时间升序，只保留最近 max_buckets 个分组"""
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unsupported granularity '{granularity}', expected one of {GRANULARITIES}")

    buckets: Dict[date, TimeBucketSummary] = {}
    undated = 0

    for s in summaries:
        if s.order_date is None:
            undated += 1
            continue
        if window_end is not None and s.order_date > window_end:
            continue
        if window_start is not None and s.order_date < window_start:
            continue

        key = _bucket_key(s.order_date, granularity)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = TimeBucketSummary(bucket=key)

        bucket.order_count += 1
        bucket.revenue += s.total_revenue
        bucket.fees += s.total_fees
        if s.has_all_hpp:
            bucket.cost += s.total_product_cost
            bucket.gross_profit += s.gross_profit
            bucket.net_profit += s.net_profit
        else:
            bucket.orders_without_hpp += 1

    if undated:
        logger.debug(f"{undated} orders without a parsable date excluded from time buckets")

    result = [buckets[key] for key in sorted(buckets)]
    if max_buckets is None:
        return result
    if max_buckets < 0:
        raise ValueError(f"max_buckets must not be negative, got {max_buckets}")
    return result[-max_buckets:] if max_buckets else []


def _rollup_cost(
        known: Sequence[OrderItemRecord],
        unknown: Sequence[OrderItemRecord],
        avg_hpp: Optional[Decimal]
) -> Optional[Decimal]:
    """SKU总成本：已知HPP的行按行成本累加，缺HPP的行按已知行的数量加权单价补齐"""
    if not known:
        return None

    known_cost = sum((r.total_cost for r in known), ZERO)
    unknown_quantity = sum(r.quantity for r in unknown)
    if not unknown_quantity:
        return known_cost

    known_quantity = sum(r.quantity for r in known)
    if known_quantity:
        return known_cost + known_cost * Decimal(unknown_quantity) / Decimal(known_quantity)
    return known_cost + avg_hpp * Decimal(unknown_quantity)


def compute_product_rollup(items: Iterable[OrderItemRecord]) -> List[ProductRollup]:
    """按SKU汇总销量、收入、成本和毛利率（按收入降序）"""
    groups: "OrderedDict[str, List[OrderItemRecord]]" = OrderedDict()
    for item in items:
        groups.setdefault(item.sku, []).append(item)

    products = []
    for sku, records in groups.items():
        quantity = sum(r.quantity for r in records)
        revenue = sum((r.revenue for r in records), ZERO)

        known = [r for r in records if r.hpp is not None]
        avg_hpp = sum((r.hpp for r in known), ZERO) / Decimal(len(known)) if known else None

        total_cost = _rollup_cost(known, [r for r in records if r.hpp is None], avg_hpp)
        if total_cost is not None:
            gross_profit = revenue - total_cost
            gross_margin = percentage(gross_profit, revenue)
        else:
            gross_profit = gross_margin = None

        dates = [r.order_date for r in records if r.order_date is not None]
        item_name = next((r.item_name for r in records if r.item_name), '')

        products.append(ProductRollup(
            sku=sku,
            item_name=item_name,
            total_quantity_sold=quantity,
            total_revenue=revenue,
            total_cost=total_cost,
            gross_profit=gross_profit,
            gross_margin=gross_margin,
            avg_selling_price=revenue / Decimal(quantity) if quantity else ZERO,
            avg_hpp=avg_hpp,
            total_orders=len({r.order_sn for r in records}),
            first_sale_date=min(dates) if dates else None,
            last_sale_date=max(dates) if dates else None,
        ))

    products.sort(key=lambda p: (-p.total_revenue, p.sku))
    return products


def summarize_products(products: Sequence[ProductRollup]) -> ProductReportSummary:
    """汇总商品报表（整体毛利率只统计已设置HPP的SKU）"""
    summary = ProductReportSummary(total_skus=len(products))
    costed_revenue = ZERO

    for p in products:
        summary.total_revenue += p.total_revenue
        if not p.has_hpp:
            summary.skus_without_hpp += 1
            continue
        costed_revenue += p.total_revenue
        summary.total_cost += p.total_cost
        summary.total_gross_profit += p.gross_profit

    summary.overall_margin = percentage(summary.total_gross_profit, costed_revenue)
    return summary
