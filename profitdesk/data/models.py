from datetime import datetime, date
from typing import List, Optional
from dataclasses import dataclass, field
from decimal import Decimal

from .amounts import ZERO


@dataclass
class SkuRecord:
    """SKU目录记录（后端聚合数据的只读快照）"""
    sku: str
    item_name: str
    total_orders: int = 0
    total_quantity: int = 0
    total_revenue: Decimal = ZERO
    current_hpp: Optional[Decimal] = None

    @property
    def has_hpp(self) -> bool:
        # HPP 为 0 也算已设置
        return self.current_hpp is not None

    @property
    def avg_price(self) -> Decimal:
        if not self.total_quantity:
            return ZERO
        return self.total_revenue / Decimal(self.total_quantity)


@dataclass
class CostBasisUpdate:
    """待提交的HPP更新"""
    sku: str
    hpp: Decimal
    item_name: Optional[str] = None
    source: str = "manual"


@dataclass
class OrderItem:
    """订单商品（输入）"""
    order_sn: str
    sku: str
    quantity: int
    unit_price: Decimal
    item_name: str = ""
    hpp: Optional[Decimal] = None
    order_date: Optional[datetime] = None


@dataclass
class OrderItemRecord:
    """订单商品盈利指标"""
    order_sn: str
    sku: str
    item_name: str
    quantity: int
    unit_price: Decimal
    revenue: Decimal
    hpp: Optional[Decimal]
    total_cost: Optional[Decimal]
    gross_profit: Optional[Decimal]
    margin: Optional[Decimal]
    order_date: Optional[datetime] = None

    @property
    def has_hpp(self) -> bool:
        return self.hpp is not None


@dataclass
class PlatformFees:
    """平台费用明细"""
    commission_fee: Decimal = ZERO
    service_fee: Decimal = ZERO
    transaction_fee: Decimal = ZERO
    shipping_fee: Decimal = ZERO
    payment_channel_fee: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return (self.commission_fee + self.service_fee + self.transaction_fee
                + self.shipping_fee + self.payment_channel_fee)


@dataclass
class Order:
    """订单（输入）"""
    order_sn: str
    order_status: str
    order_date: Optional[datetime] = None
    payment_date: Optional[datetime] = None
    shop_name: str = ""
    total_amount: Optional[Decimal] = None
    items: List[OrderItem] = field(default_factory=list)
    fees: PlatformFees = field(default_factory=PlatformFees)


@dataclass
class OrderCostSummary:
    """订单成本汇总"""
    order_sn: str
    order_status: str
    order_date: Optional[datetime]
    items: List[OrderItemRecord]
    total_revenue: Decimal
    total_product_cost: Optional[Decimal]
    fees: PlatformFees
    total_fees: Decimal
    gross_profit: Optional[Decimal]
    net_profit: Optional[Decimal]
    gross_margin: Optional[Decimal]
    net_margin: Optional[Decimal]
    has_all_hpp: bool
    items_without_hpp: int
    payment_date: Optional[datetime] = None
    shop_name: str = ""

    @property
    def item_count(self) -> int:
        return len(self.items)


@dataclass
class TimeBucketSummary:
    """时间段汇总"""
    bucket: date
    revenue: Decimal = ZERO
    cost: Decimal = ZERO
    gross_profit: Decimal = ZERO
    net_profit: Decimal = ZERO
    fees: Decimal = ZERO
    order_count: int = 0
    orders_without_hpp: int = 0


@dataclass
class ProductRollup:
    """SKU维度汇总"""
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
    first_sale_date: Optional[datetime] = None
    last_sale_date: Optional[datetime] = None

    @property
    def has_hpp(self) -> bool:
        return self.avg_hpp is not None


@dataclass
class PnLSummary:
    """损益报表汇总"""
    total_orders: int = 0
    total_revenue: Decimal = ZERO
    total_cost: Decimal = ZERO
    total_gross_profit: Decimal = ZERO
    total_net_profit: Decimal = ZERO
    total_fees: Decimal = ZERO
    overall_gross_margin: Optional[Decimal] = None
    overall_net_margin: Optional[Decimal] = None
    orders_without_hpp: int = 0
    completed_orders: int = 0
    pending_orders: int = 0


@dataclass
class ProductReportSummary:
    """商品报表汇总"""
    total_skus: int = 0
    total_revenue: Decimal = ZERO
    total_cost: Decimal = ZERO
    total_gross_profit: Decimal = ZERO
    overall_margin: Optional[Decimal] = None
    skus_without_hpp: int = 0


@dataclass
class IngestionReport:
    """表格导入结果"""
    total_rows: int
    ingested: int
    skus: List[str] = field(default_factory=list)
    unknown_skus: List[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.total_rows - self.ingested


@dataclass
class SubmissionOutcome:
    """批量提交结果"""
    updated_count: int
    skus: List[str]
    notes: Optional[str] = None
    message: str = ""
    submitted_at: datetime = field(default_factory=datetime.now)
