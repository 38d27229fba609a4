# profitdesk/engine/core.py
import logging
import uuid
from typing import Dict, Any, List, Optional
from datetime import datetime, timedelta

from .catalog import CatalogIndex
from .ingestion import CostBasisSession
from .submitter import BatchSubmitter
from ..analytics import profitability
from ..analytics.margins import bucket_by_margin_band
from ..data.amounts import ZERO
from ..data.connectors import BackendError
from ..data.models import OrderCostSummary, SubmissionOutcome

logger = logging.getLogger(__name__)


def get_repositories(settings) -> Dict[str, Any]:
    """根据配置获取数据仓库（未配置后端时使用模拟数据）"""
    if settings.has_backend():
        from ..data.connectors import BackendConnector
        from ..data.repositories import CatalogRepository, CostBasisRepository, OrderRepository

        connector = BackendConnector(settings.backend)
        return {
            'catalog': CatalogRepository(connector),
            'cost_basis': CostBasisRepository(connector),
            'orders': OrderRepository(connector),
        }

    logger.warning("Backend not configured, using mock data")
    from ..data.mock_repository import (
        MockBackend, MockCatalogRepository, MockCostBasisRepository, MockOrderRepository
    )
    backend = MockBackend()
    return {
        'catalog': MockCatalogRepository(backend),
        'cost_basis': MockCostBasisRepository(backend),
        'orders': MockOrderRepository(backend),
    }


class ProfitDeskEngine:
    """HPP对账与盈利报表引擎"""

    def __init__(self, settings=None, repositories: Optional[Dict[str, Any]] = None):
        if settings is None:
            from ..config.settings import get_settings
            settings = get_settings()
        self.settings = settings

        # 数据层
        repositories = repositories or get_repositories(settings)
        self.catalog_repo = repositories['catalog']
        self.cost_basis_repo = repositories['cost_basis']
        self.order_repo = repositories['orders']

        # 目录延迟加载，避免启动时请求后端
        self._catalog: Optional[CatalogIndex] = None

        # 每个录入流程一个会话，互不共享待提交集合
        self.sessions: Dict[str, CostBasisSession] = {}

    @property
    def catalog(self) -> CatalogIndex:
        if self._catalog is None:
            self._catalog = CatalogIndex(self.catalog_repo)
        elif self._catalog.stale:
            try:
                self._catalog.refresh()
            except BackendError as e:
                logger.warning(f"Catalog still stale, serving last snapshot: {e}")
        return self._catalog

    @property
    def submitter(self) -> BatchSubmitter:
        return BatchSubmitter(
            self.cost_basis_repo,
            catalog=self.catalog,
            require_known_skus=self.settings.reports.require_known_skus
        )

    # ---------- HPP录入 ----------

    def expire_idle_sessions(self) -> List[str]:
        """关闭超过空闲时限的会话，返回被关闭的会话ID"""
        idle_limit = timedelta(minutes=self.settings.reports.session_idle_minutes)
        cutoff = datetime.now() - idle_limit
        expired = [sid for sid, session in self.sessions.items() if session.last_active < cutoff]
        for session_id in expired:
            session = self.sessions.pop(session_id)
            logger.info(f"HPP session {session_id} expired after {idle_limit} idle, "
                        f"{session.pending_count} unsent updates dropped")
        return expired

    def open_session(self) -> str:
        """创建录入会话"""
        self.expire_idle_sessions()
        session_id = uuid.uuid4().hex
        self.sessions[session_id] = CostBasisSession(self.catalog)
        logger.info(f"HPP session {session_id} opened")
        return session_id

    def get_session(self, session_id: str) -> CostBasisSession:
        self.expire_idle_sessions()
        try:
            session = self.sessions[session_id]
        except KeyError:
            raise KeyError(f"HPP session '{session_id}' not found")
        session.touch()
        # 目录过期时借此重新加载；会话与引擎共享同一个目录对象
        session.catalog = self.catalog
        return session

    def close_session(self, session_id: str):
        """关闭会话并丢弃未提交的数据"""
        session = self.sessions.pop(session_id, None)
        if session is not None:
            logger.info(f"HPP session {session_id} closed with {session.pending_count} unsent updates")

    def submit_session(self, session_id: str, notes: Optional[str] = None) -> SubmissionOutcome:
        """提交会话中的HPP；成功后刷新目录并清空待提交集合"""
        session = self.get_session(session_id)
        outcome = self.submitter.submit(session.current_pending(), notes)

        session.clear()
        try:
            self.catalog.refresh()
        except BackendError as e:
            # 提交已成功，保留旧目录，下次访问时重试
            logger.error(f"Catalog refresh after HPP update failed: {e}")
            self.catalog.mark_stale()
        return outcome

    # ---------- 报表 ----------

    def _order_summaries(
            self,
            order_status: Optional[str] = 'all',
            start_date: Optional[datetime] = None,
            end_date: Optional[datetime] = None
    ) -> List[OrderCostSummary]:
        orders = self.order_repo.get_orders(order_status, start_date, end_date)
        summaries = [profitability.compute_order_summary(order) for order in orders]
        return profitability.filter_orders(summaries, order_status)

    def product_report(
            self,
            sku: Optional[str] = None,
            start_date: Optional[datetime] = None,
            end_date: Optional[datetime] = None,
            order_status: Optional[str] = 'all'
    ) -> Dict[str, Any]:
        """商品表现报表"""
        logger.info(f"Building product report (sku={sku}, status={order_status})")
        summaries = self._order_summaries(order_status, start_date, end_date)

        items = [item for s in summaries for item in s.items]
        if sku:
            needle = sku.strip().lower()
            items = [item for item in items if needle in item.sku.lower()]

        products = profitability.compute_product_rollup(items)
        return {
            'data': products,
            'summary': profitability.summarize_products(products),
            'margin_distribution': bucket_by_margin_band(products),
        }

    def pnl_report(
            self,
            order_status: Optional[str] = 'all',
            start_date: Optional[datetime] = None,
            end_date: Optional[datetime] = None,
            group_by: str = 'order'
    ) -> Dict[str, Any]:
        """损益报表"""
        logger.info(f"Building P&L report (status={order_status}, group_by={group_by})")
        summaries = self._order_summaries(order_status, start_date, end_date)
        summaries.sort(key=lambda s: (s.order_date or datetime.min), reverse=True)

        completed = profitability.filter_orders(summaries, profitability.COMPLETED)
        pending = profitability.filter_orders(summaries, 'PENDING')

        report = {
            'data': summaries,
            'summary': profitability.summarize_orders(summaries),
            'daily_trend': profitability.bucket_by_time(
                summaries, 'daily', window_end=end_date,
                max_buckets=self.settings.reports.daily_trend_buckets
            ),
            'status_comparison': [
                {'status': 'Completed', 'orders': len(completed),
                 'revenue': sum((s.total_revenue for s in completed), ZERO)},
                {'status': 'Pending', 'orders': len(pending),
                 'revenue': sum((s.total_revenue for s in pending), ZERO)},
            ],
            'groups': [],
        }
        if group_by in profitability.GRANULARITIES:
            report['groups'] = profitability.bucket_by_time(
                summaries, group_by, window_end=end_date, max_buckets=None
            )
        return report

    def order_cost_report(self, order_sn: str) -> OrderCostSummary:
        """单个订单成本明细"""
        order = self.order_repo.get_order(order_sn)
        if order is None:
            raise KeyError(f"Order '{order_sn}' not found")
        return profitability.compute_order_summary(order)
