"""
BannerService与展示历史测试
"""

import asyncio
import pytest
from datetime import datetime, timedelta
from unittest.mock import ANY, AsyncMock

from app.core.exceptions import NotFoundError, ValidationError
from app.core.redis import RedisManager
from app.models.banner import BannerEventKind, BannerUpdate, DisplayRules, VisitorContext
from app.repositories.banner_repository import BannerRepository
from app.services.banner_service import BannerService
from app.services.display_history import BannerDisplayHistoryStore


@pytest.fixture
def fake_redis():
    """用字典模拟RedisManager的hash操作"""
    store = {}
    manager = AsyncMock(spec=RedisManager)

    async def hincrby_with_stamp(name, counter_field, stamp_field, stamp, ttl):
        fields = store.setdefault(name, {})
        fields[counter_field] = str(int(fields.get(counter_field, 0)) + 1)
        fields[stamp_field] = stamp
        return int(fields[counter_field])

    async def hgetall(name):
        return dict(store.get(name, {}))

    manager.hincrby_with_stamp.side_effect = hincrby_with_stamp
    manager.hgetall.side_effect = hgetall
    manager.store = store
    return manager


@pytest.mark.asyncio
class TestDisplayHistoryStore:
    """展示历史存储测试类"""

    async def test_first_display_then_repeat(self, fake_redis):
        history_store = BannerDisplayHistoryStore(fake_redis, ttl=60)
        now = datetime(2026, 1, 1, 12, 0, 0)

        assert await history_store.record_display("v1", "b1", now=now) is True
        assert await history_store.record_display("v1", "b1", now=now + timedelta(minutes=5)) is False

        history = await history_store.get_history("v1")
        assert history["b1"].display_count == 2
        assert history["b1"].last_displayed_at == now + timedelta(minutes=5)
        fake_redis.hincrby_with_stamp.assert_called_with("banner_history:v1", "b1:count", "b1:last", ANY, 60)

    async def test_anonymous_visitor_has_no_history(self, fake_redis):
        assert await BannerDisplayHistoryStore(fake_redis).get_history(None) == {}
        fake_redis.hgetall.assert_not_called()

    async def test_corrupt_entry_ignored(self, fake_redis):
        fake_redis.store["banner_history:v1"] = {
            "b1:count": "many",
            "b2:count": "1",
            "b3:last": "2026-01-01T12:00:00"
        }

        history = await BannerDisplayHistoryStore(fake_redis).get_history("v1")

        assert list(history.keys()) == ["b2"]

    async def test_concurrent_first_impressions_counted_once(self, fake_redis):
        history_store = BannerDisplayHistoryStore(fake_redis)

        results = await asyncio.gather(
            history_store.record_display("v1", "b1"),
            history_store.record_display("v1", "b1")
        )

        assert sorted(results) == [False, True]

    async def test_redis_failure_is_not_a_first_view(self, fake_redis):
        fake_redis.hincrby_with_stamp.side_effect = None
        fake_redis.hincrby_with_stamp.return_value = None

        assert await BannerDisplayHistoryStore(fake_redis).record_display("v1", "b1") is False


@pytest.mark.asyncio
class TestBannerService:
    """BannerService业务逻辑测试类"""

    @pytest.fixture
    def mock_banner_repo(self):
        repo = AsyncMock(spec=BannerRepository)
        repo.increment_counter.return_value = True
        return repo

    @pytest.fixture
    def mock_cache(self):
        """模拟缓存"""
        cache = AsyncMock()
        cache.get = AsyncMock(return_value=None)
        cache.set = AsyncMock()
        cache.delete_pattern = AsyncMock()
        return cache

    async def test_cached_candidates_are_filtered_per_visitor(self, mock_banner_repo, mock_cache,
                                                             build_banner, banner_now):
        shop_only = build_banner("shop", display_rules=DisplayRules(show_on_pages=["/shop"]))
        everywhere = build_banner("all", priority=1)
        mock_cache.get.return_value = [shop_only.dict(), everywhere.dict()]
        service = BannerService(mock_banner_repo, cache=mock_cache)

        result = await service.get_active_banners(VisitorContext(), "/about", now=banner_now)

        assert [b.banner_id for b in result] == ["all"]
        mock_banner_repo.get_active_banners.assert_not_called()

    async def test_history_caps_applied(self, mock_banner_repo, mock_cache, fake_redis,
                                        build_banner, banner_now):
        once = build_banner("once", display_rules=DisplayRules(show_frequency="once"))
        mock_cache.get.return_value = [once.dict()]
        history_store = BannerDisplayHistoryStore(fake_redis)
        await history_store.record_display("v1", "once", now=banner_now)
        service = BannerService(mock_banner_repo, history_store=history_store, cache=mock_cache)

        assert await service.get_active_banners(VisitorContext(visitor_id="v1"), "/", now=banner_now) == []
        assert len(await service.get_active_banners(VisitorContext(visitor_id="v2"), "/", now=banner_now)) == 1

    async def test_record_unknown_banner(self, mock_banner_repo, mock_cache):
        mock_banner_repo.increment_counter.return_value = False
        service = BannerService(mock_banner_repo, cache=mock_cache)

        with pytest.raises(NotFoundError):
            await service.record_event("missing", BannerEventKind.CLICK)

    async def test_first_impression_counts_unique_view(self, mock_banner_repo, mock_cache, fake_redis):
        service = BannerService(
            mock_banner_repo,
            history_store=BannerDisplayHistoryStore(fake_redis),
            cache=mock_cache
        )

        await service.record_event("b1", BannerEventKind.IMPRESSION, visitor_id="v1")
        await service.record_event("b1", BannerEventKind.IMPRESSION, visitor_id="v1")

        assert mock_banner_repo.increment_counter.call_count == 2
        mock_banner_repo.increment_unique_views.assert_called_once_with("b1")

    async def test_click_does_not_touch_history(self, mock_banner_repo, mock_cache, fake_redis):
        service = BannerService(
            mock_banner_repo,
            history_store=BannerDisplayHistoryStore(fake_redis),
            cache=mock_cache
        )

        await service.record_event("b1", BannerEventKind.CLICK, visitor_id="v1")

        mock_banner_repo.increment_counter.assert_called_once_with("b1", BannerEventKind.CLICK)
        fake_redis.hincrby_with_stamp.assert_not_called()

    async def test_update_rejects_inverted_window(self, mock_banner_repo, mock_cache, build_banner):
        banner = build_banner("b1")
        service = BannerService(mock_banner_repo, cache=mock_cache)
        service.get_banner = AsyncMock(return_value=banner)

        with pytest.raises(ValidationError):
            await service.update_banner("b1", BannerUpdate(end_date=banner.start_date - timedelta(days=1)))

        mock_banner_repo.update.assert_not_called()
