from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, get_banner_service, get_optional_user
from app.core.database import get_db_session
from app.models.banner import BannerEventRequest, BannerPosition, BannerResponse, BannerType, VisitorContext
from app.services.banner_service import BannerService

router = APIRouter(prefix="/promotional-banners", tags=["促销横幅"])


@router.get("/active")
async def get_active_banners(
    page_path: str = Query("/", alias="pagePath"),
    banner_type: Optional[BannerType] = Query(None, alias="type"),
    position: Optional[BannerPosition] = None,
    visitor_id: Optional[str] = Query(None, alias="visitorId"),
    is_new_user: Optional[bool] = Query(None, alias="isNewUser"),
    location: Optional[str] = None,
    device: Optional[str] = None,
    browser: Optional[str] = None,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    banner_service: BannerService = Depends(get_banner_service)
):
    """按访客和页面挑选要展示的横幅"""
    visitor = VisitorContext(
        visitor_id=visitor_id or (user.user_id if user else None),
        is_logged_in=user is not None,
        is_new_user=is_new_user,
        segment=user.segment if user else None,
        location=location,
        device=device,
        browser=browser
    )
    banners = await banner_service.get_active_banners(
        visitor,
        page_path,
        banner_type=banner_type.value if banner_type else None,
        position=position.value if position else None
    )
    return {"banners": [BannerResponse.from_banner(banner) for banner in banners]}


@router.post("/track")
async def track_banner_event(
    event: BannerEventRequest,
    db: AsyncSession = Depends(get_db_session),
    banner_service: BannerService = Depends(get_banner_service)
):
    """记录横幅展示或点击"""
    await banner_service.record_event(event.banner_id, event.action, visitor_id=event.visitor_id)
    await db.commit()
    return {"success": True}
