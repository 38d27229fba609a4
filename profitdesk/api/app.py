# profitdesk/api/app.py
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from profitdesk.api.dependencies import set_engine
from profitdesk.api.routes import router
from profitdesk.api.schemas import ErrorResponse
from profitdesk.data.connectors import BackendError
from profitdesk.engine.core import ProfitDeskEngine
from profitdesk.engine.errors import ParseError, PreconditionError, SubmissionError, ValidationError

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# 由 lifespan 创建，/health 读取
engine = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """启动时创建引擎，关闭时释放后端连接"""
    global engine

    from profitdesk.config.settings import get_settings
    try:
        engine = ProfitDeskEngine(get_settings())
        set_engine(engine)
        logger.info("ProfitDesk engine ready")
    except Exception as e:
        logger.error(f"ProfitDesk engine failed to start: {e}", exc_info=True)
        engine = None

    yield

    if engine is not None:
        logger.info(f"Shutting down with {len(engine.sessions)} open HPP sessions")
        connector = getattr(engine.catalog_repo, 'db', None)
        if connector is not None:
            connector.close()
    set_engine(None)


app = FastAPI(
    title="ProfitDesk API",
    description="HPP对账与盈利报表API",
    version=VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1")


def _error(status_code: int, error: str, detail: str, rejected=None) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail, rejected=rejected or {})
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(422, "validation_error", str(exc))


@app.exception_handler(ParseError)
async def parse_error_handler(request: Request, exc: ParseError):
    return _error(400, "parse_error", str(exc))


@app.exception_handler(PreconditionError)
async def precondition_error_handler(request: Request, exc: PreconditionError):
    return _error(400, "precondition_error", str(exc))


@app.exception_handler(SubmissionError)
async def submission_error_handler(request: Request, exc: SubmissionError):
    return _error(502, "submission_error", str(exc), exc.rejected)


@app.exception_handler(BackendError)
async def backend_error_handler(request: Request, exc: BackendError):
    logger.error(f"Backend unavailable for {request.url.path}: {exc}")
    return _error(503, "backend_error", str(exc))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return _error(500, "internal_error", str(exc))


@app.get("/")
async def root():
    """服务信息"""
    return {
        "name": "ProfitDesk API",
        "version": VERSION,
        "api": "/api/v1",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """健康检查"""
    if engine is None:
        return {"status": "degraded", "version": VERSION, "message": "Engine not initialized"}

    return {
        "status": "healthy",
        "version": VERSION,
        "backend": "mock" if engine.catalog_repo.db is None else "http",
        "open_sessions": len(engine.sessions),
    }


if __name__ == "__main__":
    from profitdesk.config.settings import get_settings

    settings = get_settings()
    uvicorn.run(
        "profitdesk.api.app:app",
        host=settings.app.host,
        port=settings.app.port,
        reload=True,
        log_level=settings.app.log_level.lower()
    )
