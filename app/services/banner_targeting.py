"""
促销横幅投放规则

纯函数实现：输入横幅集合、访客上下文、页面路径和该访客的展示历史，
输出应展示的横幅及顺序。展示历史由调用方提供。
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from app.models.banner import (
    DisplayHistory,
    DisplayRules,
    PromotionalBanner,
    ShowFrequency,
    TargetAudience,
    VisitorContext,
)

FREQUENCY_WINDOWS = {
    ShowFrequency.DAILY: timedelta(days=1),
    ShowFrequency.WEEKLY: timedelta(days=7),
}


def page_matches(pattern: str, page_path: str) -> bool:
    """页面规则匹配：'*'、前缀、或以'*'结尾的通配前缀"""
    if pattern == "*":
        return True
    if pattern.endswith("*"):
        return page_path.startswith(pattern[:-1])
    return page_path.startswith(pattern)


def _in_filter(allowed: List[str], value: Optional[str], case_insensitive: bool = False) -> bool:
    if not allowed:
        return True
    if value is None:
        return False
    if case_insensitive:
        return value.lower() in {a.lower() for a in allowed}
    return value in allowed


def matches_audience(audience: TargetAudience, visitor: VisitorContext) -> bool:
    """目标人群匹配，各维度为空表示不限"""
    if audience.user_types and not set(audience.user_types) & visitor.user_types:
        return False
    if not _in_filter(audience.user_segments, visitor.segment, case_insensitive=True):
        return False
    if not _in_filter(audience.locations, visitor.location, case_insensitive=True):
        return False
    if not _in_filter(audience.devices, visitor.device, case_insensitive=True):
        return False
    if not _in_filter(audience.browsers, visitor.browser, case_insensitive=True):
        return False
    return True


def matches_page(rules: DisplayRules, page_path: str) -> bool:
    """页面规则，隐藏列表优先于展示列表"""
    if rules.show_on_pages and not any(page_matches(p, page_path) for p in rules.show_on_pages):
        return False
    if any(page_matches(p, page_path) for p in rules.hide_on_pages):
        return False
    return True


def within_display_caps(
    rules: DisplayRules,
    history: Optional[DisplayHistory],
    now: datetime
) -> bool:
    """频次上限检查，已达上限时返回False"""
    if history is None or history.display_count == 0:
        return True

    if rules.show_frequency == ShowFrequency.ONCE:
        return False

    if rules.max_displays is not None and history.display_count >= rules.max_displays:
        return False

    last = history.last_displayed_at
    if last is not None:
        window = FREQUENCY_WINDOWS.get(rules.show_frequency)
        if window is not None and now - last < window:
            return False
        if rules.min_time_between_displays and now - last < timedelta(hours=rules.min_time_between_displays):
            return False

    return True


def should_show(
    banner: PromotionalBanner,
    visitor: VisitorContext,
    page_path: str,
    history: Optional[DisplayHistory] = None,
    now: Optional[datetime] = None
) -> bool:
    """单个横幅是否对当前访客展示"""
    now = now or datetime.now()
    return (
        banner.is_currently_active(now)
        and matches_audience(banner.target_audience, visitor)
        and matches_page(banner.display_rules, page_path)
        and within_display_caps(banner.display_rules, history, now)
    )


def select_banners(
    banners: Iterable[PromotionalBanner],
    visitor: VisitorContext,
    page_path: str,
    history: Optional[Dict[str, DisplayHistory]] = None,
    now: Optional[datetime] = None
) -> List[PromotionalBanner]:
    """筛选并排序：优先级降序，创建时间降序，ID升序"""
    now = now or datetime.now()
    history = history or {}

    selected = [
        banner for banner in banners
        if should_show(banner, visitor, page_path, history.get(banner.banner_id), now)
    ]
    selected.sort(key=lambda b: b.banner_id)
    selected.sort(key=lambda b: (b.priority, b.created_at), reverse=True)
    return selected
