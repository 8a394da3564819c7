"""Error taxonomy for the engine.

Every failure aborts the enclosing transaction with no partial effect. Each
error carries a stable ``code`` (the reason an observer sees) next to the
human-readable message.

Families:
- InputValidationError: rejected before any state change
- AuthorizationError: caller lacks rights over a stake, NFT or contract
- StateConflictError: request conflicts with current state
- EconomicBoundsError: balances, allowances, slippage and fee bounds
"""

from typing import Optional


class FlashError(Exception):
    """Base class for all engine errors."""
    code = "FLASH_ERROR"
    default_message = "operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(f"{self.code}: {self.message}")


class InputValidationError(FlashError, ValueError):
    """Malformed or out-of-range input."""
    code = "INVALID_INPUT"


class AuthorizationError(FlashError, PermissionError):
    """Caller is not allowed to perform the operation."""
    code = "UNAUTHORIZED"


class StateConflictError(FlashError):
    """Operation conflicts with the current state."""
    code = "STATE_CONFLICT"


class EconomicBoundsError(FlashError, ValueError):
    """Insufficient funds, slippage or a bounded parameter exceeded."""
    code = "ECONOMIC_BOUNDS"


# Input validation

class DurationTooLowError(InputValidationError):
    code = "DURATION_TOO_LOW"
    default_message = "duration is below the minimum stake duration"


class DurationTooHighError(InputValidationError):
    code = "EXCEEDS_MAX_STAKE_DURATION"
    default_message = "duration exceeds the maximum stake duration"


class ZeroAmountError(InputValidationError):
    code = "ZERO_AMOUNT"
    default_message = "amount must be greater than zero"


class ArraySizeMismatchError(InputValidationError):
    code = "ARRAY_SIZE_MISMATCH"
    default_message = "token and amount lists differ in length"


class PrincipalMismatchError(InputValidationError):
    code = "PRINCIPAL_MISMATCH"
    default_message = "strategy principal differs from the declared principal token"


# Authorization

class NotOwnerError(AuthorizationError):
    code = "NOT_OWNER"
    default_message = "caller is not the owner of the stake"


class NotNFTOwnerError(AuthorizationError):
    code = "NOT_NFT_OWNER"
    default_message = "caller does not hold the stake NFT"


class NFTTokenRequiredError(AuthorizationError):
    code = "NFT_TOKEN_REQUIRED"
    default_message = "stake rights are held by an NFT; unstake with the NFT id"


class NotFlashProtocolError(AuthorizationError):
    code = "NOT_FLASH_PROTOCOL"
    default_message = "caller is not the registered protocol"


class NotContractOwnerError(AuthorizationError):
    code = "NOT_CONTRACT_OWNER"
    default_message = "caller is not the owner"


# State conflicts

class StrategyAlreadyRegisteredError(StateConflictError):
    code = "STRATEGY_ALREADY_REGISTERED"
    default_message = "strategy is already registered"


class UnregisteredStrategyError(StateConflictError):
    code = "UNREGISTERED_STRATEGY"
    default_message = "strategy is not registered"


class NFTAlreadyExistsError(StateConflictError):
    code = "NFT_ALREADY_EXISTS"
    default_message = "an NFT was already issued for this stake"


class StakeNotFoundError(StateConflictError):
    code = "STAKE_NOT_FOUND"
    default_message = "stake does not exist"


class StakeNotActiveError(StateConflictError):
    code = "STAKE_NOT_ACTIVE"
    default_message = "stake is already settled"


class FTokenAddressAlreadySetError(StateConflictError):
    code = "FTOKEN_ADDRESS_ALREADY_SET"
    default_message = "fToken address is already set"


class FTokenAddressNotSetError(StateConflictError):
    code = "FTOKEN_ADDRESS_NOT_SET"
    default_message = "strategy has no fToken bound"


class NonexistentTokenError(StateConflictError):
    code = "NONEXISTENT_TOKEN"
    default_message = "NFT does not exist"


class LockoutInForceError(StateConflictError):
    code = "LOCKOUT_IN_FORCE"
    default_message = "reward lockout is in force"


class LockoutNotInForceError(StateConflictError):
    code = "LOCKOUT_NOT_IN_FORCE"
    default_message = "reward lockout is not in force"


class ReentrancyError(StateConflictError):
    code = "REENTRANT_CALL"
    default_message = "reentrant call"


# Economic bounds

class InsufficientFTokenSupplyError(EconomicBoundsError):
    code = "INSUFFICIENT_FTOKEN_SUPPLY"
    default_message = "fToken supply is zero"


class InsufficientBalanceError(EconomicBoundsError):
    code = "INSUFFICIENT_BALANCE"
    default_message = "transfer amount exceeds balance"


class InsufficientAllowanceError(EconomicBoundsError):
    code = "INSUFFICIENT_ALLOWANCE"
    default_message = "transfer amount exceeds allowance"


class InsufficientPrincipalError(EconomicBoundsError):
    code = "INSUFFICIENT_PRINCIPAL"
    default_message = "withdrawal exceeds the principal held by the strategy"


class SlippageError(EconomicBoundsError):
    code = "OUTPUT_TOO_LOW"
    default_message = "output is below the requested minimum"


class MintFeeTooHighError(EconomicBoundsError):
    code = "MINT_FEE_TOO_HIGH"
    default_message = "mint fee exceeds the maximum"


class TokenAddressProhibitedError(EconomicBoundsError):
    code = "TOKEN_ADDRESS_PROHIBITED"
    default_message = "token cannot be withdrawn from the strategy"


class RatioCanOnlyBeIncreasedError(EconomicBoundsError):
    code = "RATIO_CAN_ONLY_BE_INCREASED"
    default_message = "reward ratio can only be increased"
