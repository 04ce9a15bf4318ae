"""
Payment backends. A backend is any callable (pay_to, amount, memo) -> proof;
the lifecycle never looks inside it.
"""

from typing import Callable

from rayment.payments.onchain import OnchainPayment, get_balance, to_wei

SendPayment = Callable[[str, float, str], str]

__all__ = [
    "SendPayment",
    "OnchainPayment",
    "get_balance",
    "to_wei",
]
