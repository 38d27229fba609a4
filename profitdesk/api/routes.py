from fastapi import APIRouter, Query, HTTPException, Depends, File, UploadFile
from fastapi.responses import Response
from typing import Optional
from datetime import date, datetime, time
import logging

from profitdesk.api.schemas import (
    IngestionResponse,
    ManualEditRequest,
    ManualEditResponse,
    OrderCostDetailResponse,
    PnLReportResponse,
    ProductReportResponse,
    SessionCreatedResponse,
    SessionResponse,
    SkuListResponse,
    SubmissionResponse,
    SubmitRequest,
    ingestion_response,
    order_cost_detail_response,
    pnl_report_response,
    product_report_response,
    session_response,
    sku_response,
    submission_response,
)
from profitdesk.api.dependencies import get_engine
from profitdesk.data.connectors import BackendError
from profitdesk.engine.core import ProfitDeskEngine
from profitdesk.reports import formatter
from profitdesk.reports.tabular import TEMPLATE_FILENAME, build_template

logger = logging.getLogger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _start(value: Optional[date]) -> Optional[datetime]:
    return datetime.combine(value, time.min) if value else None


def _end(value: Optional[date]) -> Optional[datetime]:
    return datetime.combine(value, time.max) if value else None


def _csv(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


def _session(engine: ProfitDeskEngine, session_id: str):
    try:
        return engine.get_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"HPP session '{session_id}' not found")


# ---------- SKU目录 ----------

@router.get("/catalog/skus", response_model=SkuListResponse)
async def list_skus(
        search: Optional[str] = Query(None, description="按SKU或商品名搜索"),
        engine: ProfitDeskEngine = Depends(get_engine)
):
    """获取SKU列表"""
    records = engine.catalog.search(search)
    return SkuListResponse(
        skus=[sku_response(r) for r in records],
        total=len(records),
        skus_without_hpp=sum(1 for r in records if not r.has_hpp)
    )


@router.get("/catalog/template")
async def download_template(
        search: Optional[str] = Query(None, description="只导出匹配的SKU"),
        engine: ProfitDeskEngine = Depends(get_engine)
):
    """下载HPP录入模板"""
    content = build_template(engine.catalog.search(search))
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'}
    )


# ---------- HPP录入会话 ----------

@router.post("/hpp/sessions", response_model=SessionCreatedResponse, status_code=201)
async def open_session(engine: ProfitDeskEngine = Depends(get_engine)):
    """创建HPP录入会话"""
    return SessionCreatedResponse(session_id=engine.open_session())


@router.get("/hpp/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
        session_id: str,
        search: Optional[str] = Query(None, description="按SKU或商品名搜索"),
        engine: ProfitDeskEngine = Depends(get_engine)
):
    """获取录入会话状态"""
    session = _session(engine, session_id)
    return session_response(session_id, session, search, engine.settings.reports.grid_page_size)


@router.put("/hpp/sessions/{session_id}/items/{sku}", response_model=ManualEditResponse)
async def edit_item(
        session_id: str,
        sku: str,
        request: ManualEditRequest,
        engine: ProfitDeskEngine = Depends(get_engine)
):
    """手工录入单个SKU的HPP"""
    session = _session(engine, session_id)
    update = session.apply_manual_edit(sku, request.value)
    return ManualEditResponse(sku=update.sku, hpp=update.hpp, pending_count=session.pending_count)


@router.delete("/hpp/sessions/{session_id}/items/{sku}", status_code=204)
async def discard_item(session_id: str, sku: str, engine: ProfitDeskEngine = Depends(get_engine)):
    """移除单个待提交的HPP"""
    _session(engine, session_id).discard(sku)
    return Response(status_code=204)


@router.post("/hpp/sessions/{session_id}/upload", response_model=IngestionResponse)
async def upload_spreadsheet(
        session_id: str,
        file: UploadFile = File(...),
        engine: ProfitDeskEngine = Depends(get_engine)
):
    """上传HPP表格"""
    session = _session(engine, session_id)
    content = await file.read()
    report = session.ingest_file(content, file.filename or "")
    return ingestion_response(report, session.pending_count)


@router.post("/hpp/sessions/{session_id}/submit", response_model=SubmissionResponse)
async def submit_session(
        session_id: str,
        request: SubmitRequest,
        engine: ProfitDeskEngine = Depends(get_engine)
):
    """提交录入会话中的全部HPP"""
    _session(engine, session_id)
    outcome = engine.submit_session(session_id, request.notes)
    return submission_response(outcome)


@router.delete("/hpp/sessions/{session_id}", status_code=204)
async def close_session(session_id: str, engine: ProfitDeskEngine = Depends(get_engine)):
    """关闭录入会话（丢弃未提交数据）"""
    engine.close_session(session_id)
    return Response(status_code=204)


# ---------- 报表 ----------

@router.get("/reports/products", response_model=ProductReportResponse)
async def get_product_report(
        sku: Optional[str] = Query(None, description="SKU搜索"),
        start_date: Optional[date] = Query(None, alias="startDate"),
        end_date: Optional[date] = Query(None, alias="endDate"),
        order_status: str = Query("all", alias="orderStatus"),
        engine: ProfitDeskEngine = Depends(get_engine)
):
    """获取商品表现报表"""
    report = engine.product_report(sku, _start(start_date), _end(end_date), order_status)
    return product_report_response(report)


@router.get("/reports/products/export")
async def export_product_report(
        sku: Optional[str] = Query(None),
        start_date: Optional[date] = Query(None, alias="startDate"),
        end_date: Optional[date] = Query(None, alias="endDate"),
        order_status: str = Query("all", alias="orderStatus"),
        engine: ProfitDeskEngine = Depends(get_engine)
):
    """导出商品表现报表CSV"""
    report = engine.product_report(sku, _start(start_date), _end(end_date), order_status)
    return _csv(formatter.product_report_to_text(report['data']), "product-performance-report.csv")


@router.get("/reports/pnl", response_model=PnLReportResponse)
async def get_pnl_report(
        order_status: str = Query("all", alias="orderStatus", pattern="^(COMPLETED|PENDING|all)$"),
        start_date: Optional[date] = Query(None, alias="startDate"),
        end_date: Optional[date] = Query(None, alias="endDate"),
        group_by: str = Query("order", alias="groupBy", pattern="^(order|daily|monthly)$"),
        engine: ProfitDeskEngine = Depends(get_engine)
):
    """获取损益报表"""
    report = engine.pnl_report(order_status, _start(start_date), _end(end_date), group_by)
    return pnl_report_response(report)


@router.get("/reports/pnl/export")
async def export_pnl_report(
        order_status: str = Query("all", alias="orderStatus", pattern="^(COMPLETED|PENDING|all)$"),
        start_date: Optional[date] = Query(None, alias="startDate"),
        end_date: Optional[date] = Query(None, alias="endDate"),
        engine: ProfitDeskEngine = Depends(get_engine)
):
    """导出损益报表CSV"""
    report = engine.pnl_report(order_status, _start(start_date), _end(end_date))
    return _csv(formatter.pnl_report_to_text(report['data']), "laporan-laba-rugi.csv")


def _order_summary(engine: ProfitDeskEngine, order_sn: str):
    try:
        return engine.order_cost_report(order_sn)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Order '{order_sn}' not found")
    except BackendError as e:
        if e.status_code == 404:
            raise HTTPException(status_code=404, detail=f"Order '{order_sn}' not found")
        raise


@router.get("/reports/order/{order_sn}/costs", response_model=OrderCostDetailResponse)
async def get_order_cost_report(order_sn: str, engine: ProfitDeskEngine = Depends(get_engine)):
    """获取订单成本明细"""
    return order_cost_detail_response(_order_summary(engine, order_sn))


@router.get("/reports/order/{order_sn}/costs/export")
async def export_order_cost_report(order_sn: str, engine: ProfitDeskEngine = Depends(get_engine)):
    """导出订单成本明细CSV"""
    summary = _order_summary(engine, order_sn)
    return _csv(formatter.order_detail_to_text(summary), f"order-cost-detail-{order_sn}.csv")
