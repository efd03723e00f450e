"""Correlation reference codec.

A reference binds a provider transaction to the tickets it pays for:

    campaign_<campaign_id>_tickets_<q1>,<q2>,...

Checkout generates it, the provider echoes it back (as ``requestNumber``,
``txid``, ``external_reference`` and so on) and webhooks decode it to find
the reserved tickets.

The campaign id segment is matched as ``[^_]+``. Campaign ids are UUIDs and
never contain an underscore; a reference built from an id that does is
rejected by ``decode`` rather than split at a different underscore.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..utils.errors import InvalidReference

REFERENCE_PATTERN = re.compile(r"campaign_([^_]+)_tickets_(.+)")
_INT_TOKEN = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class DecodedReference:
    campaign_id: str
    quota_numbers: List[int]


def encode(campaign_id: str, quota_numbers: Iterable[int]) -> str:
    """Build a reference, keeping quota numbers in the order given."""
    numbers = [int(q) for q in quota_numbers]
    if not campaign_id:
        raise InvalidReference("Campaign id is required")
    if "_" in campaign_id:
        raise InvalidReference(
            "Campaign id must not contain '_'", campaign_id=campaign_id
        )
    if not numbers:
        raise InvalidReference("At least one quota number is required")
    if any(q < 1 for q in numbers):
        raise InvalidReference("Quota numbers must be positive", quota_numbers=numbers)
    return f"campaign_{campaign_id}_tickets_{','.join(str(q) for q in numbers)}"


def decode(reference: Optional[str]) -> DecodedReference:
    """Split a reference into campaign id and quota numbers.

    Raises ``InvalidReference`` when the reference is missing, does not match
    the pattern, or carries a token that is not a base-10 integer.
    """
    if not reference:
        raise InvalidReference("No external reference found")
    match = REFERENCE_PATTERN.fullmatch(str(reference))
    if not match:
        raise InvalidReference("Invalid external reference format", reference=reference)
    campaign_id, raw_numbers = match.group(1), match.group(2)
    quota_numbers: List[int] = []
    for token in raw_numbers.split(","):
        token = token.strip()
        if not _INT_TOKEN.fullmatch(token):
            raise InvalidReference(
                "Invalid quota number in external reference",
                reference=reference,
                token=token,
            )
        quota_numbers.append(int(token, 10))
    return DecodedReference(campaign_id=campaign_id, quota_numbers=quota_numbers)
