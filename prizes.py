# prizes.py
"""
Prize definitions and the selector that picks one for a redemption.

A code with a fixed prize always yields that prize. Every other code draws
from the weighted pool: with total weight W, an integer r is drawn uniformly
from [0, W) and the first prize whose cumulative weight is strictly greater
than r wins, so r == cumulative weight of A belongs to the prize after A.
"""
import random
from dataclasses import dataclass
from typing import Optional, Sequence

from config import CURRENCY_SYMBOL


@dataclass(frozen=True)
class Prize:
    label: str
    value: float
    weight: int = 1


DEFAULT_PRIZE_POOL: tuple[Prize, ...] = (
    Prize("R$0,50", 0.5, 80),
    Prize("R$1,00", 1.0, 50),
    Prize("R$2,00", 2.0, 30),
    Prize("R$3,00", 3.0, 20),
    Prize("R$4,00", 4.0, 20),
    Prize("R$5,00", 5.0, 10),
    Prize("R$10,00", 10.0, 5),
)


def format_currency(value: float) -> str:
    """5.0 -> 'R$5,00', 1234.5 -> 'R$1.234,50'."""
    text = f"{value:,.2f}"
    # Swap separators to the 1.234,56 convention
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{CURRENCY_SYMBOL}{text}"


def fixed_prize(code) -> Optional[Prize]:
    """The prize bound to a code at issuance, if any."""
    if code.prize_value is None:
        return None
    label = code.prize_label or format_currency(code.prize_value)
    return Prize(label=label, value=float(code.prize_value))


class PrizeSelector:
    """Picks the prize for one redemption.

    ``rng`` only needs ``randrange``; pass a seeded ``random.Random`` for
    reproducible draws.
    """

    def __init__(self, pool: Sequence[Prize] = DEFAULT_PRIZE_POOL, rng=None):
        if not pool:
            raise ValueError("prize pool is empty")
        for prize in pool:
            if not isinstance(prize.weight, int) or prize.weight <= 0:
                raise ValueError(f"prize {prize.label!r} needs a positive integer weight")
        self.pool = tuple(pool)
        self.total_weight = sum(p.weight for p in self.pool)
        self.rng = rng if rng is not None else random.Random()

    def draw(self) -> Prize:
        r = self.rng.randrange(self.total_weight)
        cumulative = 0
        for prize in self.pool:
            cumulative += prize.weight
            if cumulative > r:
                return prize
        # unreachable while r < total_weight
        return self.pool[-1]

    def select(self, code) -> Prize:
        prize = fixed_prize(code)
        if prize is not None:
            return prize
        return self.draw()
