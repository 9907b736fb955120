# storefront/api/routers/webhooks.py
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.errors import InvalidSignature, SettlementFailure
from storefront.domain.schemas import WebhookAck
from storefront.services import stripe_client
from storefront.services.settlement_service import SettlementService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    2xx = Stripe nie ponawia; 5xx = Stripe dostarczy event ponownie.
    Podpis sprawdzany na surowym body, zanim cokolwiek trafi do rejestru eventow.
    """
    payload = await request.body()
    try:
        event = stripe_client.verify_event(payload, request.headers.get("stripe-signature"))
    except InvalidSignature as e:
        logger.warning(f"Rejected webhook: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    svc = SettlementService(db)
    try:
        return await run_in_threadpool(svc.handle, event)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SettlementFailure as e:
        raise HTTPException(status_code=500, detail=str(e))
