from typing import Dict, Optional

from .base import (
    ProviderAdapter,
    SettlementOutcome,
    WebhookEvent,
    map_status,
)
from .fluxsis import FluxsisAdapter
from .paggue import PaggueAdapter
from .pay2m import Pay2mAdapter
from .pix import PixAdapter
from .stripe import StripeAdapter
from .suitpay import SuitPayAdapter

ADAPTERS: Dict[str, ProviderAdapter] = {
    adapter.name: adapter
    for adapter in (
        StripeAdapter(),
        PixAdapter(),
        SuitPayAdapter(),
        Pay2mAdapter(),
        FluxsisAdapter(),
        PaggueAdapter(),
    )
}


def get_adapter(name: str) -> Optional[ProviderAdapter]:
    return ADAPTERS.get((name or "").strip().lower())


__all__ = [
    "ADAPTERS",
    "get_adapter",
    "ProviderAdapter",
    "SettlementOutcome",
    "WebhookEvent",
    "map_status",
]
