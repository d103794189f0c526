"""
支付回调签名校验

签名头格式: t=<unix时间戳>,v1=<hex签名>[,v1=<hex签名>...]
签名内容: HMAC-SHA256(secret, "<t>.<原始请求体>")
"""

import hashlib
import hmac
import json
import time
from typing import Any, Dict, List, Optional, Tuple

from app.core.exceptions import ExternalSignatureError, ValidationError

SIGNATURE_SCHEME = "v1"


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    """计算签名"""
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def _parse_signature_header(header: str) -> Tuple[int, List[str]]:
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise ExternalSignatureError("签名头时间戳格式错误")
        elif key == SIGNATURE_SCHEME and value:
            signatures.append(value)

    if timestamp is None or not signatures:
        raise ExternalSignatureError("签名头缺少时间戳或签名")
    return timestamp, signatures


def verify_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int = 300,
    now: Optional[int] = None
) -> None:
    """校验签名，失败抛出 ExternalSignatureError"""
    if not header:
        raise ExternalSignatureError("缺少签名头")

    timestamp, signatures = _parse_signature_header(header)
    expected = compute_signature(payload, timestamp, secret)

    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise ExternalSignatureError("签名不匹配")

    current = int(time.time()) if now is None else now
    if tolerance and abs(current - timestamp) > tolerance:
        raise ExternalSignatureError("签名时间戳超出允许范围")


def construct_event(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int = 300,
    now: Optional[int] = None
) -> Dict[str, Any]:
    """先校验签名，再解析事件内容"""
    verify_signature(payload, header, secret, tolerance=tolerance, now=now)
    try:
        event = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("事件内容不是合法JSON")
    if not isinstance(event, dict):
        raise ValidationError("事件内容格式错误")
    return event
