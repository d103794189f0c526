from typing import Optional

from fastapi import APIRouter, Depends

from app.api.deps import CurrentUser, get_coupon_service, get_optional_user
from app.models.coupon import CouponValidationRequest, CouponValidationResponse
from app.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["优惠券"])


@router.post(
    "/validate",
    response_model=CouponValidationResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True
)
async def validate_coupon(
    request: CouponValidationRequest,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    coupon_service: CouponService = Depends(get_coupon_service)
):
    """校验优惠券，结果以 valid/reason 返回，不抛业务异常"""
    user_id = request.user_id or (user.user_id if user else None)
    evaluation = await coupon_service.evaluate(
        code=request.code,
        order_amount=request.order_amount,
        items=request.items,
        user_id=user_id
    )
    return CouponValidationResponse.from_evaluation(evaluation)
