"""
业务异常定义

只用于真正的异常情况；优惠券校验、横幅筛选等业务结果以返回值表达。
"""

from typing import Any, Dict, Optional


class BusinessException(Exception):
    """业务异常基类"""

    status_code: int = 400
    error_code: str = "BUSINESS_ERROR"
    retriable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "error_code": self.error_code,
            "message": self.message,
            "retriable": self.retriable,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BusinessException):
    """输入数据不合法，不会自动重试"""
    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFoundError(BusinessException):
    """优惠券/商品/订单/横幅不存在"""
    status_code = 404
    error_code = "NOT_FOUND"


class AuthorizationError(BusinessException):
    """缺少身份或角色权限不足"""
    status_code = 403
    error_code = "FORBIDDEN"


class ConflictError(BusinessException):
    """库存不足、优惠券用尽、幂等键冲突"""
    status_code = 409
    error_code = "CONFLICT"


class ExternalSignatureError(BusinessException):
    """支付回调签名校验失败，致命且不重试"""
    status_code = 400
    error_code = "SIGNATURE_INVALID"


class TransientStoreError(BusinessException):
    """数据库或网络暂时不可用，调用方可以重试"""
    status_code = 503
    error_code = "STORE_UNAVAILABLE"
    retriable = True
