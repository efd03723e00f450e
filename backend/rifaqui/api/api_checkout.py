from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import (
    PixCheckoutCreate,
    PixCheckoutRead,
    PublicationFeeCheckoutCreate,
    PublicationFeeCheckoutRead,
)
from ..services import checkout, publication_fee
from ..utils.errors import (
    CampaignAlreadyPaidError,
    NotFoundError,
    ReferenceFormatError,
    TicketsUnavailableError,
    error_response,
)

router = APIRouter(tags=["payments"])


@router.post("/payments/pix", response_model=PixCheckoutRead)
def create_pix_payment(payload: PixCheckoutCreate, db: Session = Depends(get_db)):
    """Reserve tickets and start a PIX payment for them."""
    try:
        result = checkout.create_pix_checkout(
            db,
            campaign_id=payload.campaign_id,
            quota_numbers=payload.quota_numbers,
            user_id=payload.user_id,
            payer={
                "email": payload.payer_email,
                "name": payload.payer_name,
                "phone": payload.payer_phone,
                "tax_id": payload.payer_tax_id,
            },
            total_amount=payload.total_amount,
        )
    except (NotFoundError, TicketsUnavailableError, ReferenceFormatError) as exc:
        return error_response(exc)
    return result.to_dict()


@router.post("/payments/publication-fee", response_model=PublicationFeeCheckoutRead)
def create_publication_fee_payment(
    payload: PublicationFeeCheckoutCreate, db: Session = Depends(get_db)
):
    """Open a Stripe checkout for the fee that publishes a draft campaign."""
    try:
        result = publication_fee.create_publication_fee_checkout(
            db,
            campaign_id=payload.campaign_id,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
        )
    except (NotFoundError, CampaignAlreadyPaidError) as exc:
        return error_response(exc)
    return result.to_dict()
