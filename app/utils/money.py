# app/utils/money.py
# 所有金额统一用整数分存储

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

CENTS_PER_UNIT = 100


def D(x: Any) -> Decimal:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_cents(x: Any) -> int:
    """四舍五入到整数分"""
    return int(D(x).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_cents(amount: Any) -> int:
    """主币种金额(如 12.50 或 "$1,200.00") 转为整数分"""
    if isinstance(amount, str):
        amount = amount.replace("$", "").replace(",", "").strip()
    try:
        return round_cents(D(amount) * CENTS_PER_UNIT)
    except InvalidOperation:
        raise ValueError(f"无法解析金额: {amount!r}")


def from_cents(cents: int) -> Decimal:
    """整数分转为两位小数的主币种金额"""
    return (Decimal(cents) / CENTS_PER_UNIT).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_cents(cents: int) -> str:
    return f"${from_cents(cents)}"
