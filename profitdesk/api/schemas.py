from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional, Union
from datetime import datetime, date
from decimal import Decimal

from ..analytics.margins import MarginBand
from ..data.amounts import round_percent
from ..data.models import (
    CostBasisUpdate,
    IngestionReport,
    OrderCostSummary,
    OrderItemRecord,
    PnLSummary,
    ProductReportSummary,
    ProductRollup,
    SkuRecord,
    SubmissionOutcome,
    TimeBucketSummary,
)


# 请求模型
class ManualEditRequest(BaseModel):
    """手工录入HPP"""
    value: Union[str, int, float, None] = Field(..., description="新的HPP值")


class SubmitRequest(BaseModel):
    """批量提交请求"""
    notes: Optional[str] = Field(None, description="本次更新备注")


# 响应模型
class SkuResponse(BaseModel):
    """SKU目录项"""
    sku: str
    item_name: str
    total_orders: int
    total_quantity: int
    total_revenue: Decimal
    current_hpp: Optional[Decimal]
    has_hpp: bool
    avg_price: Decimal


class SkuListResponse(BaseModel):
    """SKU列表响应"""
    skus: List[SkuResponse]
    total: int
    skus_without_hpp: int


class SessionCreatedResponse(BaseModel):
    """录入会话创建响应"""
    session_id: str


class PendingUpdateResponse(BaseModel):
    """待提交的HPP"""
    sku: str
    hpp: Decimal
    item_name: Optional[str]
    source: str


class GridRowResponse(BaseModel):
    """录入表格行"""
    sku: str
    item_name: str
    total_orders: int
    total_quantity: int
    total_revenue: Decimal
    current_hpp: Optional[Decimal]
    new_hpp: Optional[Decimal]
    status: str


class SessionResponse(BaseModel):
    """录入会话状态"""
    session_id: str
    pending: List[PendingUpdateResponse]
    pending_count: int
    rows: List[GridRowResponse]
    total_matches: int
    truncated: bool


class ManualEditResponse(BaseModel):
    """手工录入结果"""
    sku: str
    hpp: Decimal
    pending_count: int


class IngestionResponse(BaseModel):
    """表格导入结果"""
    total_rows: int
    ingested: int
    skipped: int
    skus: List[str]
    unknown_skus: List[str]
    pending_count: int


class SubmissionResponse(BaseModel):
    """批量提交结果"""
    updated_count: int
    skus: List[str]
    notes: Optional[str]
    message: str
    submitted_at: datetime


class ProductReportItem(BaseModel):
    """商品表现"""
    sku: str
    item_name: str
    total_quantity_sold: int
    total_revenue: Decimal
    total_cost: Optional[Decimal]
    gross_profit: Optional[Decimal]
    gross_margin: Optional[Decimal]
    avg_selling_price: Decimal
    avg_hpp: Optional[Decimal]
    total_orders: int
    first_sale_date: Optional[datetime]
    last_sale_date: Optional[datetime]


class ProductSummaryResponse(BaseModel):
    """商品报表汇总"""
    total_skus: int
    total_revenue: Decimal
    total_cost: Decimal
    total_gross_profit: Decimal
    overall_margin: Optional[Decimal]
    skus_without_hpp: int


class MarginBandCount(BaseModel):
    """毛利率分档统计"""
    band: str
    name: str
    value: int


class ProductReportResponse(BaseModel):
    """商品表现报表响应"""
    data: List[ProductReportItem]
    summary: ProductSummaryResponse
    margin_distribution: List[MarginBandCount]


class OrderItemDetail(BaseModel):
    """订单商品明细"""
    sku: str
    item_name: str
    quantity: int
    unit_price: Decimal
    total_revenue: Decimal
    hpp: Optional[Decimal]
    total_cost: Optional[Decimal]
    gross_profit: Optional[Decimal]
    margin: Optional[Decimal]
    has_hpp: bool


class OrderCosts(BaseModel):
    """订单成本汇总"""
    total_revenue: Decimal
    total_product_cost: Optional[Decimal]
    commission_fee: Decimal
    service_fee: Decimal
    transaction_fee: Decimal
    shipping_fee: Decimal
    payment_channel_fee: Decimal
    total_fees: Decimal
    gross_profit: Optional[Decimal]
    net_profit: Optional[Decimal]
    gross_margin: Optional[Decimal]
    net_margin: Optional[Decimal]


class PnLReportItem(BaseModel):
    """损益报表行（一个订单）"""
    order_sn: str
    order_status: str
    order_date: Optional[datetime]
    payment_date: Optional[datetime]
    item_count: int
    has_all_hpp: bool
    items_without_hpp: int
    costs: OrderCosts
    items: List[OrderItemDetail]


class PnLSummaryResponse(BaseModel):
    """损益报表汇总"""
    total_orders: int
    total_revenue: Decimal
    total_cost: Decimal
    total_gross_profit: Decimal
    total_net_profit: Decimal
    total_fees: Decimal
    overall_gross_margin: Optional[Decimal]
    overall_net_margin: Optional[Decimal]
    orders_without_hpp: int
    completed_orders: int
    pending_orders: int


class TimeBucketResponse(BaseModel):
    """时间段汇总"""
    bucket: date
    revenue: Decimal
    cost: Decimal
    gross_profit: Decimal
    net_profit: Decimal
    fees: Decimal
    order_count: int
    orders_without_hpp: int


class StatusComparison(BaseModel):
    """订单状态对比"""
    status: str
    orders: int
    revenue: Decimal


class PnLReportResponse(BaseModel):
    """损益报表响应"""
    data: List[PnLReportItem]
    summary: PnLSummaryResponse
    daily_trend: List[TimeBucketResponse]
    groups: List[TimeBucketResponse]
    status_comparison: List[StatusComparison]


class OrderInfo(BaseModel):
    """订单基本信息"""
    order_sn: str
    order_status: str
    order_date: Optional[datetime]
    payment_date: Optional[datetime]
    shop_name: str


class OrderCostDetailResponse(BaseModel):
    """订单成本明细响应"""
    order: OrderInfo
    item_details: List[OrderItemDetail]
    order_costs: OrderCosts
    has_all_hpp: bool
    items_without_hpp: int


# 错误响应
class ErrorResponse(BaseModel):
    """错误响应"""
    error: str
    detail: str
    rejected: Dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)


# ---------- 模型转换 ----------

def sku_response(record: SkuRecord) -> SkuResponse:
    return SkuResponse(
        sku=record.sku,
        item_name=record.item_name,
        total_orders=record.total_orders,
        total_quantity=record.total_quantity,
        total_revenue=record.total_revenue,
        current_hpp=record.current_hpp,
        has_hpp=record.has_hpp,
        avg_price=record.avg_price,
    )


def pending_response(update: CostBasisUpdate) -> PendingUpdateResponse:
    return PendingUpdateResponse(sku=update.sku, hpp=update.hpp, item_name=update.item_name, source=update.source)


def session_response(session_id: str, session, search: Optional[str] = None,
                     limit: Optional[int] = 50) -> SessionResponse:
    grid = session.grid(search, limit)
    pending = session.current_pending()
    return SessionResponse(
        session_id=session_id,
        pending=[pending_response(pending[sku]) for sku in sorted(pending)],
        pending_count=len(pending),
        rows=[
            GridRowResponse(
                sku=row['record'].sku,
                item_name=row['record'].item_name,
                total_orders=row['record'].total_orders,
                total_quantity=row['record'].total_quantity,
                total_revenue=row['record'].total_revenue,
                current_hpp=row['record'].current_hpp,
                new_hpp=row['new_hpp'],
                status=row['status'],
            )
            for row in grid['rows']
        ],
        total_matches=grid['total_matches'],
        truncated=grid['truncated'],
    )


def ingestion_response(report: IngestionReport, pending_count: int) -> IngestionResponse:
    return IngestionResponse(
        total_rows=report.total_rows,
        ingested=report.ingested,
        skipped=report.skipped,
        skus=report.skus,
        unknown_skus=report.unknown_skus,
        pending_count=pending_count,
    )


def submission_response(outcome: SubmissionOutcome) -> SubmissionResponse:
    return SubmissionResponse(
        updated_count=outcome.updated_count,
        skus=outcome.skus,
        notes=outcome.notes,
        message=outcome.message,
        submitted_at=outcome.submitted_at,
    )


def product_item(p: ProductRollup) -> ProductReportItem:
    return ProductReportItem(
        sku=p.sku,
        item_name=p.item_name,
        total_quantity_sold=p.total_quantity_sold,
        total_revenue=p.total_revenue,
        total_cost=p.total_cost,
        gross_profit=p.gross_profit,
        gross_margin=round_percent(p.gross_margin),
        avg_selling_price=p.avg_selling_price,
        avg_hpp=p.avg_hpp,
        total_orders=p.total_orders,
        first_sale_date=p.first_sale_date,
        last_sale_date=p.last_sale_date,
    )


def product_report_response(report: Dict[str, Any]) -> ProductReportResponse:
    summary: ProductReportSummary = report['summary']
    distribution: Dict[MarginBand, int] = report['margin_distribution']
    return ProductReportResponse(
        data=[product_item(p) for p in report['data']],
        summary=ProductSummaryResponse(
            total_skus=summary.total_skus,
            total_revenue=summary.total_revenue,
            total_cost=summary.total_cost,
            total_gross_profit=summary.total_gross_profit,
            overall_margin=round_percent(summary.overall_margin),
            skus_without_hpp=summary.skus_without_hpp,
        ),
        margin_distribution=[
            MarginBandCount(band=band.name, name=band.label, value=count)
            for band, count in distribution.items()
        ],
    )


def order_item_detail(item: OrderItemRecord) -> OrderItemDetail:
    return OrderItemDetail(
        sku=item.sku,
        item_name=item.item_name,
        quantity=item.quantity,
        unit_price=item.unit_price,
        total_revenue=item.revenue,
        hpp=item.hpp,
        total_cost=item.total_cost,
        gross_profit=item.gross_profit,
        margin=round_percent(item.margin),
        has_hpp=item.has_hpp,
    )


def order_costs(summary: OrderCostSummary) -> OrderCosts:
    fees = summary.fees
    return OrderCosts(
        total_revenue=summary.total_revenue,
        total_product_cost=summary.total_product_cost,
        commission_fee=fees.commission_fee,
        service_fee=fees.service_fee,
        transaction_fee=fees.transaction_fee,
        shipping_fee=fees.shipping_fee,
        payment_channel_fee=fees.payment_channel_fee,
        total_fees=summary.total_fees,
        gross_profit=summary.gross_profit,
        net_profit=summary.net_profit,
        gross_margin=round_percent(summary.gross_margin),
        net_margin=round_percent(summary.net_margin),
    )


def time_bucket_response(bucket: TimeBucketSummary) -> TimeBucketResponse:
    return TimeBucketResponse(
        bucket=bucket.bucket,
        revenue=bucket.revenue,
        cost=bucket.cost,
        gross_profit=bucket.gross_profit,
        net_profit=bucket.net_profit,
        fees=bucket.fees,
        order_count=bucket.order_count,
        orders_without_hpp=bucket.orders_without_hpp,
    )


def pnl_report_response(report: Dict[str, Any]) -> PnLReportResponse:
    summary: PnLSummary = report['summary']
    return PnLReportResponse(
        data=[
            PnLReportItem(
                order_sn=s.order_sn,
                order_status=s.order_status,
                order_date=s.order_date,
                payment_date=s.payment_date,
                item_count=s.item_count,
                has_all_hpp=s.has_all_hpp,
                items_without_hpp=s.items_without_hpp,
                costs=order_costs(s),
                items=[order_item_detail(item) for item in s.items],
            )
            for s in report['data']
        ],
        summary=PnLSummaryResponse(
            total_orders=summary.total_orders,
            total_revenue=summary.total_revenue,
            total_cost=summary.total_cost,
            total_gross_profit=summary.total_gross_profit,
            total_net_profit=summary.total_net_profit,
            total_fees=summary.total_fees,
            overall_gross_margin=round_percent(summary.overall_gross_margin),
            overall_net_margin=round_percent(summary.overall_net_margin),
            orders_without_hpp=summary.orders_without_hpp,
            completed_orders=summary.completed_orders,
            pending_orders=summary.pending_orders,
        ),
        daily_trend=[time_bucket_response(b) for b in report['daily_trend']],
        groups=[time_bucket_response(b) for b in report['groups']],
        status_comparison=[StatusComparison(**row) for row in report['status_comparison']],
    )


def order_cost_detail_response(summary: OrderCostSummary) -> OrderCostDetailResponse:
    return OrderCostDetailResponse(
        order=OrderInfo(
            order_sn=summary.order_sn,
            order_status=summary.order_status,
            order_date=summary.order_date,
            payment_date=summary.payment_date,
            shop_name=summary.shop_name,
        ),
        item_details=[order_item_detail(item) for item in summary.items],
        order_costs=order_costs(summary),
        has_all_hpp=summary.has_all_hpp,
        items_without_hpp=summary.items_without_hpp,
    )
