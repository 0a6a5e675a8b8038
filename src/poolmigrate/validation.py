"""
Input validation for pool migrations.

Every function here is pure: no I/O, no logging, no shared state. Calling
a validator twice with the same input yields the same result or the same
error both times. The coordinator runs these before touching any registry,
so malformed input can never reach a mutating call.

Address rules follow EIP-55: an all-lowercase or all-uppercase hex address
is accepted and normalized to its checksummed form; a mixed-case address
must carry a valid checksum.

Example:
    >>> validate_address("0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed")
    '0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed'
    >>> validate_allocation("250")
    250
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from eth_typing import ChecksumAddress
from eth_utils import is_checksum_address, is_hex_address, to_checksum_address

from poolmigrate.exceptions import InvalidAddressError, InvalidAmountError, ValidationError
from poolmigrate.models import UINT256_MAX


@dataclass(frozen=True)
class ValidatedInput:
    """
    Normalized parameters of one migration run.

    Attributes:
        staked_asset: Checksummed staked-asset address.
        requested_allocation_points: Allocation for the new pool.
        mass_update: Whether mutations mass-update all pools.
        settlement_delay_seconds: Fixed wait after provisioning.
        auxiliary_distributors: Checksummed distributor addresses.
    """

    staked_asset: ChecksumAddress
    requested_allocation_points: int
    mass_update: bool
    settlement_delay_seconds: int
    auxiliary_distributors: tuple[ChecksumAddress, ...] = ()


def validate_address(raw: object, field_name: str = "staked_asset") -> ChecksumAddress:
    """
    Validate and checksum an address.

    Args:
        raw: Candidate address, with or without the 0x prefix.
        field_name: Parameter name used in the error.

    Returns:
        The EIP-55 checksummed address.

    Raises:
        InvalidAddressError: If the value is not a string, is not 20 bytes of
            hex, or is mixed-case with a wrong checksum.
    """
    if not isinstance(raw, str):
        raise InvalidAddressError(raw, field_name)

    candidate = raw.strip()
    if not candidate.startswith("0x"):
        candidate = f"0x{candidate}"

    if not is_hex_address(candidate):
        raise InvalidAddressError(raw, field_name)

    # Only single-case hex may skip the EIP-55 check.
    digits = candidate[2:]
    mixed_case = digits not in (digits.lower(), digits.upper())
    if mixed_case and not is_checksum_address(candidate):
        raise InvalidAddressError(raw, field_name)

    return to_checksum_address(candidate)


def validate_non_negative_int(
    raw: object,
    field_name: str,
    limit: int | None = None,
) -> int:
    """
    Validate a whole, non-negative number.

    Accepts ``int`` values and strings of ASCII digits. Booleans, floats,
    signs, decimal points and exponents are rejected rather than coerced.

    Args:
        raw: Candidate value.
        field_name: Parameter name used in the error.
        limit: Inclusive upper bound, if any.

    Returns:
        The value as an int.

    Raises:
        InvalidAmountError: If the value is not an acceptable whole number.
    """
    if isinstance(raw, bool):
        raise InvalidAmountError(raw, field_name, "booleans are not amounts")

    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not text or not (text.isascii() and text.isdigit()):
            raise InvalidAmountError(raw, field_name, "not a whole number")
        value = int(text)
    else:
        raise InvalidAmountError(raw, field_name, f"unsupported type {type(raw).__name__}")

    if value < 0:
        raise InvalidAmountError(raw, field_name, "negative")

    if limit is not None and value > limit:
        raise InvalidAmountError(raw, field_name, f"exceeds {limit}")

    return value


def validate_allocation(raw: object, limit: int = UINT256_MAX) -> int:
    """Validate the requested allocation points."""
    return validate_non_negative_int(raw, "requested_allocation_points", limit)


def validate_delay(raw: object) -> int:
    """Validate the settlement delay in whole seconds."""
    return validate_non_negative_int(raw, "settlement_delay_seconds")


def validate_migration_input(
    requested_allocation_points: object,
    staked_asset: object,
    mass_update: object,
    settlement_delay_seconds: object,
    auxiliary_distributors: Iterable[object] = (),
    *,
    allocation_limit: int = UINT256_MAX,
) -> ValidatedInput:
    """
    Validate all parameters of a migration run.

    Args:
        requested_allocation_points: Allocation for the new pool.
        staked_asset: Address of the staked asset.
        mass_update: Mass-update flag; must be a real bool.
        settlement_delay_seconds: Fixed wait after provisioning.
        auxiliary_distributors: Distributor addresses for the new pool.
        allocation_limit: Inclusive bound for the requested allocation.

    Returns:
        ValidatedInput with normalized values.

    Raises:
        InvalidAddressError: For a malformed staked asset or distributor.
        InvalidAmountError: For a malformed allocation or delay.
        ValidationError: For a non-boolean mass-update flag.
    """
    asset = validate_address(staked_asset)
    allocation = validate_allocation(requested_allocation_points, allocation_limit)

    if not isinstance(mass_update, bool):
        raise ValidationError(
            f"Invalid mass_update flag: {mass_update!r} (expected a boolean)",
            details={"field": "mass_update", "value": repr(mass_update)},
        )

    delay = validate_delay(settlement_delay_seconds)
    distributors = tuple(
        validate_address(d, "auxiliary_distributors") for d in auxiliary_distributors
    )

    return ValidatedInput(
        staked_asset=asset,
        requested_allocation_points=allocation,
        mass_update=mass_update,
        settlement_delay_seconds=delay,
        auxiliary_distributors=distributors,
    )


__all__ = [
    "ValidatedInput",
    "validate_address",
    "validate_non_negative_int",
    "validate_allocation",
    "validate_delay",
    "validate_migration_input",
]
