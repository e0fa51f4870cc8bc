"""Typed errors raised by the settlement core.

Every error carries a stable ``code`` and a ``category`` so the HTTP layer
can map it to a response without inspecting messages:

- validation: bad input from the caller, never retried
- state: merchant or protocol state forbids the operation (4xx)
- external: a dependency (chain RPC, aggregator) failed; retry the whole compose
- integrity: corrupted or forged input, or an arithmetic domain violation
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(Enum):
    """Broad error families."""

    VALIDATION = "validation"
    STATE = "state"
    EXTERNAL = "external"
    INTEGRITY = "integrity"


class SettlementError(Exception):
    """Base class for all settlement errors."""

    code: str = "settlement_error"
    category: ErrorCategory = ErrorCategory.INTEGRITY
    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str = "", **context: object) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> dict[str, object]:
        """Render as a JSON-friendly error body."""
        return {"error": self.code, "detail": self.message}


# --- Validation ---


class InvalidInput(SettlementError):
    category = ErrorCategory.VALIDATION
    http_status = 400


class InvalidBasisPoints(InvalidInput):
    """Basis points out of range or payout + buyback above 100%."""

    code = "invalid_basis_points"


class AssetNotAccepted(InvalidInput):
    """Merchant does not accept the requested payment asset."""

    code = "asset_not_accepted"


class InvalidAddress(InvalidInput):
    code = "invalid_address"


class InvalidSeeds(InvalidInput):
    """Too many seeds, or a seed longer than 32 bytes."""

    code = "invalid_seeds"


class InvalidAmount(InvalidInput):
    code = "invalid_amount"


class InvalidMinOut(InvalidInput):
    """Nonzero buyback without a usable minimum output."""

    code = "invalid_min_out"


class InvalidRequest(InvalidInput):
    code = "invalid_request"


# --- State ---


class StateError(SettlementError):
    category = ErrorCategory.STATE
    http_status = 409


class MerchantNotFound(StateError):
    code = "merchant_not_found"
    http_status = 404


class ProtocolNotInitialized(StateError):
    code = "protocol_not_initialized"
    http_status = 503


class MerchantFrozen(StateError):
    code = "merchant_frozen"
    http_status = 403


class ProtocolPaused(StateError):
    code = "protocol_paused"
    http_status = 503


class MerchantStateMismatch(StateError):
    """Off-chain profile disagrees with the on-chain registry entry."""

    code = "merchant_state_mismatch"


class MerchantAlreadyRegistered(StateError):
    code = "merchant_already_registered"


# --- External dependencies ---


class ExternalError(SettlementError):
    category = ErrorCategory.EXTERNAL
    http_status = 502
    retryable = True


class NetworkUnavailable(ExternalError):
    """Chain RPC failed, timed out, or returned an error."""

    code = "network_unavailable"
    http_status = 503


class RouteUnavailable(ExternalError):
    """The aggregator could not route the buyback conversion."""

    code = "route_unavailable"


# --- Integrity ---


class IntegrityError(SettlementError):
    category = ErrorCategory.INTEGRITY
    http_status = 422


class MalformedSwapTransaction(IntegrityError):
    code = "malformed_swap_transaction"


class AmountOverflow(IntegrityError, ArithmeticError):
    """An amount left the u64 domain or an intermediate left u128."""

    code = "amount_overflow"


class AddressDerivationExhausted(IntegrityError):
    """No bump seed produced an off-curve address."""

    code = "address_derivation_exhausted"
    http_status = 500


class AccountDecodeError(IntegrityError):
    """Fetched account data does not match the expected layout."""

    code = "account_decode_error"
    http_status = 502


__all__ = [
    "ErrorCategory",
    "SettlementError",
    "InvalidInput",
    "InvalidBasisPoints",
    "AssetNotAccepted",
    "InvalidAddress",
    "InvalidSeeds",
    "InvalidAmount",
    "InvalidMinOut",
    "InvalidRequest",
    "StateError",
    "MerchantNotFound",
    "ProtocolNotInitialized",
    "MerchantFrozen",
    "ProtocolPaused",
    "MerchantStateMismatch",
    "MerchantAlreadyRegistered",
    "ExternalError",
    "NetworkUnavailable",
    "RouteUnavailable",
    "IntegrityError",
    "MalformedSwapTransaction",
    "AmountOverflow",
    "AddressDerivationExhausted",
    "AccountDecodeError",
]
