from __future__ import annotations


class SaleError(RuntimeError):
    """Base class for rejected sale operations. State is unchanged when raised."""


class PhaseInactiveError(SaleError):
    pass


class InvalidProofError(SaleError):
    pass


class AllocationExceededError(SaleError):
    pass


class InsufficientBalanceOrAllowanceError(SaleError):
    pass


class NothingToRedeemError(SaleError):
    pass


class UnauthorizedError(SaleError):
    pass
