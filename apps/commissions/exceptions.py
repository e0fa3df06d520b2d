from decimal import Decimal


class PayoutError(ValueError):
    pass


class PayoutEligibilityError(PayoutError):
    def __init__(self, message: str, eligible: Decimal) -> None:
        super().__init__(message)
        self.eligible = eligible


class InvalidPayoutTransition(PayoutError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move payout from '{current}' to '{target}'")
        self.current = current
        self.target = target
