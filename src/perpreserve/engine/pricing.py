"""Price strategies consulted for rollover value equivalence."""

from typing import Dict, Optional, Protocol

from .bonds import Tranche


class PricingStrategy(Protocol):
    """Fixed-point price of a tranche; precision declared by decimals()."""

    def price(self, tranche: Tranche) -> int:
        ...

    def decimals(self) -> int:
        ...


class UnitPricingStrategy:
    """Every tranche is worth exactly one unit."""

    def __init__(self, decimals: int = 8):
        self._decimals = decimals

    def price(self, tranche: Tranche) -> int:
        return 10 ** self._decimals

    def decimals(self) -> int:
        return self._decimals


class TablePricingStrategy:
    """Explicit per-tranche prices with a default for everything else."""

    def __init__(
        self,
        prices: Optional[Dict[str, int]] = None,
        default_price: Optional[int] = None,
        decimals: int = 8,
    ):
        self._decimals = decimals
        self._prices: Dict[str, int] = dict(prices or {})
        self._default = 10 ** decimals if default_price is None else default_price

    def set_price(self, tranche_address: str, price: int) -> None:
        if price < 0:
            raise ValueError(f"Price must be non-negative, got {price}")
        self._prices[tranche_address] = price

    def price(self, tranche: Tranche) -> int:
        return self._prices.get(tranche.address, self._default)

    def decimals(self) -> int:
        return self._decimals
