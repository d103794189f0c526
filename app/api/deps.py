"""
依赖注入：身份、仓储和服务的组装

身份由上游认证服务解析后通过请求头转发：
X-User-Id / X-User-Role / X-User-Segment
"""

from typing import Optional

from fastapi import Depends, Header, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.exceptions import AuthorizationError
from app.core.redis import RedisManager
from app.repositories.banner_repository import BannerRepository
from app.repositories.cart_repository import CartRepository
from app.repositories.coupon_repository import CouponRepository
from app.repositories.order_repository import OrderRepository, PaymentEventRepository
from app.repositories.product_repository import ProductRepository
from app.services.banner_service import BannerService
from app.services.cart_service import CartService
from app.services.coupon_service import CouponService
from app.services.display_history import BannerDisplayHistoryStore
from app.services.order_service import OrderService
from app.services.product_service import ProductService

ADMIN_ROLE = "admin"


class CurrentUser(BaseModel):
    """请求方身份"""

    user_id: str
    role: str = "customer"
    segment: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


async def get_optional_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_user_segment: Optional[str] = Header(None)
) -> Optional[CurrentUser]:
    if not x_user_id:
        return None
    return CurrentUser(user_id=x_user_id, role=x_user_role or "customer", segment=x_user_segment)


async def get_current_user(user: Optional[CurrentUser] = Depends(get_optional_user)) -> CurrentUser:
    if user is None:
        raise AuthorizationError("Authentication required")
    return user


async def require_admin(user: Optional[CurrentUser] = Depends(get_optional_user)) -> CurrentUser:
    if user is None or not user.is_admin:
        raise AuthorizationError("Admin role required")
    return user


def get_redis_manager(request: Request) -> Optional[RedisManager]:
    return getattr(request.app.state, "redis", None)


async def get_coupon_service(db: AsyncSession = Depends(get_db_session)) -> CouponService:
    return CouponService(
        coupon_repo=CouponRepository(db),
        product_repo=ProductRepository(db),
        order_repo=OrderRepository(db)
    )


async def get_banner_service(
    db: AsyncSession = Depends(get_db_session),
    redis_manager: Optional[RedisManager] = Depends(get_redis_manager)
) -> BannerService:
    history_store = BannerDisplayHistoryStore(redis_manager) if redis_manager else None
    return BannerService(BannerRepository(db), history_store=history_store)


async def get_order_service(
    db: AsyncSession = Depends(get_db_session),
    coupon_service: CouponService = Depends(get_coupon_service)
) -> OrderService:
    return OrderService(
        order_repo=OrderRepository(db),
        product_repo=ProductRepository(db),
        cart_repo=CartRepository(db),
        payment_event_repo=PaymentEventRepository(db),
        coupon_service=coupon_service
    )


async def get_cart_service(db: AsyncSession = Depends(get_db_session)) -> CartService:
    return CartService(CartRepository(db), ProductRepository(db))


async def get_product_service(db: AsyncSession = Depends(get_db_session)) -> ProductService:
    return ProductService(ProductRepository(db))
