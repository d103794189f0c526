"""
全局异常处理器
统一错误响应格式: {"success": false, "error_code", "message", "retriable"}
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import BusinessException, TransientStoreError

logger = logging.getLogger(__name__)

__all__ = [
    "BusinessException",
    "validation_exception_handler",
    "http_exception_handler",
    "database_exception_handler",
    "business_exception_handler",
    "general_exception_handler",
]


def _error_body(error_code: str, message: str, retriable: bool = False, **extra) -> dict:
    body = {
        "success": False,
        "error_code": error_code,
        "message": message,
        "retriable": retriable,
    }
    body.update(extra)
    return body


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求参数校验失败"""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", [])),
            "message": error.get("msg"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=_error_body("VALIDATION_ERROR", "请求参数不合法", details=errors)
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("HTTP_ERROR", str(exc.detail))
    )


async def business_exception_handler(request: Request, exc: BusinessException) -> JSONResponse:
    """业务异常按自身状态码返回"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} 失败: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} 被拒绝: {exc.error_code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """数据库异常视为暂时性故障，调用方可以重试"""
    logger.error(f"{request.method} {request.url.path} 数据库异常: {exc}")
    error = TransientStoreError("数据存储暂时不可用，请稍后重试")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path} 未处理异常: {exc}")
    return JSONResponse(
        status_code=500,
        content=_error_body("INTERNAL_ERROR", "服务器内部错误")
    )
