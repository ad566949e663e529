"""
Exceptions raised by the sale contracts.

Every operation validates its inputs before touching the ledger and raises
one of these; the surrounding transaction is rolled back so nothing partial
is ever persisted.
"""


class SaleError(Exception):
    """Base class for all sale contract errors."""
    pass


# Invalid input

class InvalidInput(SaleError):
    pass


class ZeroContribution(InvalidInput):
    pass


class InvalidThresholds(InvalidInput):
    pass


class ZeroAmount(InvalidInput):
    pass


class ZeroDuration(InvalidInput):
    pass


class ZeroAddress(InvalidInput):
    pass


class ZeroTokenAddress(ZeroAddress):
    pass


class ZeroOwnerAddress(ZeroAddress):
    pass


class InvalidTokenAddress(ZeroAddress):
    pass


class InvalidArrayLength(InvalidInput):
    pass


class InvalidSaleWindow(InvalidInput):
    pass


class ClaimStartInThePast(InvalidSaleWindow):
    pass


class ClaimEndBeforeStart(InvalidSaleWindow):
    pass


class InvalidMerkleProof(InvalidInput):
    pass


class InsufficientBalance(InvalidInput):
    pass


class InsufficientAllowance(InvalidInput):
    pass


# Time window violations

class WindowViolation(SaleError):
    pass


class NotInFundingPeriod(WindowViolation):
    pass


class ClaimPeriodNotStarted(WindowViolation):
    pass


class ClaimNotStarted(WindowViolation):
    pass


class ClaimEnded(WindowViolation):
    pass


class VestingNotStarted(WindowViolation):
    pass


class ExpiredSignature(WindowViolation):
    pass


# Nothing to release

class NothingToClaim(SaleError):
    pass


class NoContributionsToClaim(NothingToClaim):
    pass


class NothingVestedToClaim(NothingToClaim):
    pass


class NoTokensToClaim(NothingToClaim):
    pass


# One-time operations

class AlreadyProcessed(SaleError):
    pass


class AlreadyDeposited(AlreadyProcessed):
    pass


class RecipientAlreadySet(AlreadyProcessed):
    pass


class AlreadyClaimed(AlreadyProcessed):
    pass


class ContractFixed(AlreadyProcessed):
    """Configuration is frozen once the owner has fixed the contract."""
    pass


# Access control

class Unauthorized(SaleError):
    pass


class NotOwner(Unauthorized):
    pass


class NotWhitelisted(Unauthorized):
    pass


class InvalidSigner(Unauthorized):
    """Permit signature was not made by the token holder."""
    pass
