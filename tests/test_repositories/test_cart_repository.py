"""
购物车Repository测试
"""

import pytest

from app.repositories.cart_repository import CartRepository


@pytest.mark.asyncio
class TestCartRepository:
    """购物车Repository测试类"""

    async def test_same_variant_accumulates(self, db_session):
        cart_repo = CartRepository(db_session)

        await cart_repo.add_item("u1", "p1", 1, size="M")
        item = await cart_repo.add_item("u1", "p1", 2, size="M")

        assert item.quantity == 3
        assert len(await cart_repo.get_user_items("u1")) == 1

    async def test_different_variants_kept_apart(self, db_session):
        cart_repo = CartRepository(db_session)

        await cart_repo.add_item("u1", "p1", 1, color="red")
        await cart_repo.add_item("u1", "p1", 1, color="blue")

        assert len(await cart_repo.get_user_items("u1")) == 2

    async def test_remove_only_own_item(self, db_session):
        cart_repo = CartRepository(db_session)
        item = await cart_repo.add_item("u1", "p1", 1)

        assert await cart_repo.remove_item("u2", item.cart_item_id) is False
        assert await cart_repo.remove_item("u1", item.cart_item_id) is True
        assert await cart_repo.get_user_items("u1") == []

    async def test_clear_user_cart(self, db_session):
        cart_repo = CartRepository(db_session)
        await cart_repo.add_item("u1", "p1", 1)
        await cart_repo.add_item("u1", "p2", 1)
        await cart_repo.add_item("u2", "p1", 1)

        assert await cart_repo.clear_user_cart("u1") == 2
        assert await cart_repo.get_user_items("u1") == []
        assert len(await cart_repo.get_user_items("u2")) == 1

    async def test_to_model_maps_empty_variant_to_none(self, db_session):
        cart_repo = CartRepository(db_session)
        item = await cart_repo.add_item("u1", "p1", 1)

        model = cart_repo.to_model(item)

        assert model.size is None
        assert model.color is None
