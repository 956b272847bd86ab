"""Yield table - per class, per seniority conversion rate from tranche to perp units."""

import logging
from typing import Dict, List, Sequence, Tuple, Union

from .bonds import TrancheClass
from .errors import UnknownTrancheClass, YieldRowLengthMismatch

logger = logging.getLogger(__name__)


class YieldTable:
    """
    Maps (class_id, seniority) -> rate with YIELD_DECIMALS precision.

    Rows are replaced wholesale. Unconfigured seniorities read as zero, so a
    freshly introduced class mints nothing until it is explicitly configured.
    """

    def __init__(self):
        self._classes: Dict[str, TrancheClass] = {}
        self._rows: Dict[str, Tuple[int, ...]] = {}

    def register(self, tranche_class: TrancheClass) -> str:
        """Make a class known to the table and return its id."""
        cid = tranche_class.class_id
        self._classes.setdefault(cid, tranche_class)
        return cid

    def set_yields(self, tranche_class: Union[TrancheClass, str], rates: Sequence[int]) -> None:
        """
        Replace the yield row for a class.

        Args:
            tranche_class: TrancheClass (registered on the fly) or a registered class id
            rates: One rate per seniority

        Raises:
            UnknownTrancheClass: If a class id string was never registered
            YieldRowLengthMismatch: If len(rates) differs from the class tranche count
        """
        if isinstance(tranche_class, TrancheClass):
            cid = self.register(tranche_class)
        else:
            cid = tranche_class
            if cid not in self._classes:
                raise UnknownTrancheClass(f"Unknown tranche class: {cid}")

        expected = self._classes[cid].tranche_count
        if len(rates) != expected:
            raise YieldRowLengthMismatch(
                f"Expected {expected} yields for class {cid[:12]}, got {len(rates)}"
            )
        if any(r < 0 for r in rates):
            raise ValueError(f"Yields must be non-negative, got {list(rates)}")

        self._rows[cid] = tuple(int(r) for r in rates)
        logger.info("Updated yields class=%s rates=%s", cid[:12], list(self._rows[cid]))

    def yield_of(self, cid: str, seniority: int) -> int:
        """Rate for the seniority, or zero when unconfigured."""
        row = self._rows.get(cid)
        if row is None or seniority < 0 or seniority >= len(row):
            return 0
        return row[seniority]

    def row(self, cid: str) -> List[int]:
        return list(self._rows.get(cid, ()))

    def is_configured(self, cid: str) -> bool:
        return cid in self._rows
