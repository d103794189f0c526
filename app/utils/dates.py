# app/utils/dates.py
# 库内时间统一为服务器本地时间的naive datetime，与 datetime.now() 可直接比较

from datetime import datetime
from typing import Optional


def to_naive_local(dt: Optional[datetime]) -> Optional[datetime]:
    """带时区的时间(如 2027-01-01T00:00:00Z) 转为本地naive时间，naive时间原样返回"""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone().replace(tzinfo=None)
