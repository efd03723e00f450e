from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class PixCheckoutCreate(BaseModel):
    campaign_id: str
    quota_numbers: List[int] = Field(min_length=1)
    user_id: Optional[str] = None
    payer_email: Optional[str] = None
    payer_name: Optional[str] = None
    payer_phone: Optional[str] = None
    payer_tax_id: Optional[str] = None
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    provider: str = "suitpay"

    @field_validator("quota_numbers")
    def positive_unique(cls, v: List[int]) -> List[int]:
        if any(q < 1 for q in v):
            raise ValueError("quota numbers must be positive")
        # keep the caller's order, drop repeats
        return list(dict.fromkeys(v))

    @field_validator("provider")
    def only_suitpay(cls, v: str) -> str:
        if v.strip().lower() != "suitpay":
            raise ValueError("only suitpay PIX checkout is supported")
        return "suitpay"


class PixCheckoutRead(BaseModel):
    payment_id: str
    status: str
    external_reference: str
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    payment_url: Optional[str] = None


class PublicationFeeCheckoutCreate(BaseModel):
    campaign_id: str
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class PublicationFeeCheckoutRead(BaseModel):
    payment_id: int
    campaign_id: str
    session_id: str
    checkout_url: str
    fee: float
    estimated_revenue: float
    live: bool
