"""Reserve engine core: queue, bonds, yields, curves, fees and the reserve itself."""

from .bonds import (
    BondInstance,
    Tranche,
    TrancheClass,
    TrancheData,
    class_id,
    classify,
    create_bond,
    seniority_of,
)
from .curves import Breakpoints, Line, PiecewiseCurve, Range, RangePosition, piecewise_average
from .errors import ConfigurationError, PreconditionError, ReserveError
from .fees import CurveFee, FeePolicy, validate_fee_pair
from .ledger import InMemoryLedger, TokenLedger
from .pricing import PricingStrategy, TablePricingStrategy, UnitPricingStrategy
from .queue import BondQueue
from .reserve import (
    BondState,
    BurnResult,
    MintResult,
    RedeemedTranche,
    ReserveEngine,
    RolloverResult,
)
from .yields import YieldTable

__all__ = [
    # Bonds
    "BondInstance",
    "Tranche",
    "TrancheClass",
    "TrancheData",
    "classify",
    "class_id",
    "create_bond",
    "seniority_of",
    # Curves and fees
    "Breakpoints",
    "Line",
    "PiecewiseCurve",
    "Range",
    "RangePosition",
    "piecewise_average",
    "CurveFee",
    "FeePolicy",
    "validate_fee_pair",
    # Collaborators
    "InMemoryLedger",
    "TokenLedger",
    "PricingStrategy",
    "TablePricingStrategy",
    "UnitPricingStrategy",
    "YieldTable",
    "BondQueue",
    # Reserve
    "BondState",
    "BurnResult",
    "MintResult",
    "RedeemedTranche",
    "ReserveEngine",
    "RolloverResult",
    # Errors
    "ReserveError",
    "PreconditionError",
    "ConfigurationError",
]
