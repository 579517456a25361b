from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from parkbooking.db.session import get_db
from parkbooking.api.deps import get_principal
from parkbooking.core.security import Principal
from parkbooking.schemas.payments import CheckoutOut, WebhookAck
from parkbooking.services import checkout_service
from parkbooking.services.chargily_client import get_payment_gateway

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-checkout", response_model=CheckoutOut)
def create_checkout(db: Session = Depends(get_db), principal: Principal = Depends(get_principal),
                    gateway=Depends(get_payment_gateway)):
    result = checkout_service.create_checkout(db, principal, gateway)
    return CheckoutOut(id=result["id"], checkout_url=result["checkout_url"], total=result["total"])


@router.post("/webhook", response_model=WebhookAck)
async def chargily_webhook(req: Request, db: Session = Depends(get_db)):
    """Chargily calls this; signature is checked against the raw body before anything else."""
    body = await req.body()
    return checkout_service.handle_webhook(db, body, req.headers.get("signature"))
