from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class OrderCompletion:
    order_id: str
    user_id: Optional[str]
    base_amount: Decimal
    completed_at: datetime
    referral_code: Optional[str] = None
    order_number: str = ""
    click_id: str = ""


@dataclass(frozen=True)
class OrderReversal:
    order_id: str
    affiliate_id: Optional[str] = None
    reason: str = ""
    amount: Optional[Decimal] = None
