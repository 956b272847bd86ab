"""Exception hierarchy for the reserve engine.

Errors fall into two families:
- PreconditionError: the call itself was wrong (bad tranche, empty queue, ...).
  The caller must correct the inputs and resubmit.
- ConfigurationError: the call was fine but the engine's configuration does not
  allow it (class mismatch, maturity window, yield row length, ...).

Economic edge cases (partial redemption, zero-value rollover) are returned as
results and never raised.
"""


class ReserveError(Exception):
    """Base class for all reserve engine errors."""


class PreconditionError(ReserveError):
    """The call violated a precondition; no state was changed."""


class ConfigurationError(ReserveError):
    """The engine configuration does not permit the call."""


# Queue
class InvalidItem(PreconditionError):
    """Attempted to enqueue an empty item."""


class DuplicateItem(PreconditionError):
    """Item is already a member of the queue."""


class EmptyQueue(PreconditionError):
    """Attempted to dequeue from an empty queue."""


class IndexOutOfBounds(PreconditionError):
    """Random access beyond the current queue length."""


# Bonds / curves
class TrancheNotFound(PreconditionError):
    """Tranche does not belong to the bond being queried."""


class InvalidRange(PreconditionError):
    """Range lower bound is above its upper bound."""


class UnsupportedRange(PreconditionError):
    """Range spans both curve breakpoints in a single call."""


# Operations
class InvalidAmount(PreconditionError):
    """Amount must be strictly positive."""


class NothingToMint(PreconditionError):
    """Deposit would mint zero perp tokens."""


class UnacceptableDepositTranche(PreconditionError):
    """Tranche is not part of the current mintable bond."""


class UnacceptableRollover(PreconditionError):
    """Tranche pair is not eligible for rollover."""


class ExceededMaxSupply(PreconditionError):
    """Mint would push perp supply above the configured cap."""

    def __init__(self, new_supply: int, max_supply: int):
        super().__init__(f"ExceededMaxSupply({new_supply}, {max_supply})")
        self.new_supply = new_supply
        self.max_supply = max_supply


class ExceededMaxMintPerTranche(PreconditionError):
    """Mint would push the per-tranche mint total above the configured cap."""

    def __init__(self, tranche: str, minted: int, max_mint: int):
        super().__init__(f"ExceededMaxMintPerTranche({tranche!r}, {minted}, {max_mint})")
        self.tranche = tranche
        self.minted = minted
        self.max_mint = max_mint


# Ledger
class InsufficientBalance(PreconditionError):
    """Transfer amount exceeds the sender's balance."""


class InsufficientAllowance(PreconditionError):
    """Transfer amount exceeds the spender's allowance."""


# Configuration
class YieldRowLengthMismatch(ConfigurationError):
    """Yield row length differs from the tranche count of the class."""


class UnknownTrancheClass(ConfigurationError):
    """Class id has never been registered with the yield table."""


class BondNotConfigured(ConfigurationError):
    """Bond class does not match the configured mint class."""


class BondMaturesTooSoon(ConfigurationError):
    """Bond matures inside the tolerable maturity window."""


class BondMaturesTooLate(ConfigurationError):
    """Bond matures beyond the maximum tolerable maturity."""


class BondOutOfOrder(ConfigurationError):
    """Bond matures before the current tail; queue order would break."""


class ZeroYield(ConfigurationError):
    """No yield is configured for the deposited tranche."""
