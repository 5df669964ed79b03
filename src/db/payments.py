# simulated payment capture; no gateway is involved
import random
from typing import Optional

SUCCESS_RATE = 0.9


class PaymentSimulator:
    """
    Approves a payment with a fixed probability.

    Pass a seeded random.Random (or a success_rate of 0/1) to make outcomes
    deterministic.
    """

    def __init__(self, success_rate: float = SUCCESS_RATE, rng: Optional[random.Random] = None):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be between 0 and 1.")
        self.success_rate = success_rate
        self._rng = rng or random.Random()

    def approve(self) -> bool:
        return self._rng.random() < self.success_rate


default_simulator = PaymentSimulator()
