from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.api.deps import get_order_service
from app.core.config import settings
from app.core.database import get_db_session
from app.core.exceptions import ExternalSignatureError, TransientStoreError, ValidationError
from app.core.security import construct_event
from app.models.payment import CHECKOUT_COMPLETED, CheckoutCompletedEvent, WebhookAck
from app.services.order_service import OrderService

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["支付回调"])

SIGNATURE_HEADER = "Stripe-Signature"


@router.post("/payment", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    order_service: OrderService = Depends(get_order_service)
):
    """支付处理方回调

    验签失败返回400且不访问数据库；落库失败返回503，由支付方重新投递。
    """
    payload = await request.body()
    try:
        event = construct_event(
            payload,
            request.headers.get(SIGNATURE_HEADER),
            settings.payment_webhook_secret,
            tolerance=settings.webhook_tolerance_seconds
        )
    except ExternalSignatureError as e:
        logger.warning("支付回调验签失败", reason=e.message)
        raise

    event_type = event.get("type")
    if event_type != CHECKOUT_COMPLETED:
        logger.info("忽略的支付事件类型", event_id=event.get("id"), event_type=event_type)
        return WebhookAck()

    try:
        checkout = CheckoutCompletedEvent.from_event(event)
    except ValueError as e:
        raise ValidationError(f"支付事件内容格式错误: {e}")

    order, duplicate = await order_service.reconcile_checkout_completed(checkout)

    try:
        await db.commit()
    except SQLAlchemyError as e:
        logger.error("支付事件提交失败", session_id=checkout.session_id, error=str(e))
        raise TransientStoreError("Order store unavailable, please retry") from e

    return WebhookAck(duplicate=duplicate, order_id=order.order_id)
