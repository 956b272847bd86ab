"""Bond instances, tranches and tranche-class classification.

Key Concepts:
- A bond splits a collateral claim into seniority-ranked tranches whose ratios
  sum to TRANCHE_RATIO_GRANULARITY (1000).
- Two bonds with the same collateral token and the same ratio vector belong to
  the same tranche class, regardless of tranche addresses or maturity.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Sequence, Tuple

from .errors import TrancheNotFound
from .fixed_point import TRANCHE_RATIO_GRANULARITY


@dataclass(frozen=True)
class Tranche:
    """One seniority slice of a bond."""
    address: str
    bond_address: str
    seniority: int  # 0 = most senior
    ratio: int  # Share of the collateral claim, out of 1000


@dataclass(frozen=True)
class BondInstance:
    """A fixed-maturity bond. Immutable once issued."""
    address: str
    maturity: int  # Unix timestamp (seconds)
    collateral_token: str
    tranches: Tuple[Tranche, ...]


@dataclass(frozen=True)
class TrancheClass:
    """Collateral token plus ordered ratio vector shared by structurally identical bonds."""
    collateral_token: str
    ratios: Tuple[int, ...]

    @property
    def tranche_count(self) -> int:
        return len(self.ratios)

    @property
    def class_id(self) -> str:
        """Deterministic, order-sensitive identifier."""
        payload = json.dumps(
            {"collateral_token": self.collateral_token, "ratios": list(self.ratios)},
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode()).hexdigest()


@dataclass(frozen=True)
class TrancheData:
    """Tranche layout of a single bond."""
    collateral_token: str
    ratios: Tuple[int, ...]
    tranche_addresses: Tuple[str, ...]
    count: int

    @property
    def tranche_class(self) -> TrancheClass:
        return TrancheClass(self.collateral_token, self.ratios)


def classify(bond: BondInstance) -> TrancheData:
    """Walk the bond's tranche list once and return its layout."""
    ratios = []
    addresses = []
    for tranche in bond.tranches:
        ratios.append(tranche.ratio)
        addresses.append(tranche.address)
    return TrancheData(
        collateral_token=bond.collateral_token,
        ratios=tuple(ratios),
        tranche_addresses=tuple(addresses),
        count=len(addresses),
    )


def class_id(data: TrancheData) -> str:
    """Class identifier derived from (collateral token, ratios)."""
    return data.tranche_class.class_id


def seniority_of(data: TrancheData, tranche: str) -> int:
    """
    Index of the tranche within the bond.

    Raises:
        TrancheNotFound: If the tranche is not part of the bond
    """
    for index, address in enumerate(data.tranche_addresses):
        if address == tranche:
            return index
    raise TrancheNotFound(f"Tranche {tranche!r} not found in bond")


def create_bond(
    address: str,
    collateral_token: str,
    ratios: Sequence[int],
    maturity: int,
) -> BondInstance:
    """
    Lay out a bond with one tranche per ratio.

    Tranche addresses are derived as "<bond>/<seniority>".

    Raises:
        ValueError: If ratios are empty, non-positive or do not sum to 1000
    """
    if not ratios:
        raise ValueError("Bond needs at least one tranche")
    if any(r <= 0 for r in ratios):
        raise ValueError(f"Tranche ratios must be positive, got {list(ratios)}")
    if sum(ratios) != TRANCHE_RATIO_GRANULARITY:
        raise ValueError(
            f"Tranche ratios must sum to {TRANCHE_RATIO_GRANULARITY}, got {sum(ratios)}"
        )
    tranches = tuple(
        Tranche(address=f"{address}/{i}", bond_address=address, seniority=i, ratio=r)
        for i, r in enumerate(ratios)
    )
    return BondInstance(
        address=address,
        maturity=maturity,
        collateral_token=collateral_token,
        tranches=tranches,
    )
