"""
Typed exception hierarchy for the gem kernel.

Every error has a typed class (catch by type, not message), a ``code``
class attribute (machine-readable, API-safe) and structured attributes.

Hierarchy::

    GemKernelError (base)
    |
    +-- AuthorizationError
    |   +-- PermissionDeniedError
    |
    +-- SequenceError
    |   +-- SequenceOverflowError
    |   +-- MalformedSequenceError
    |   +-- DuplicateIdentifierError
    |   +-- AllocationFailedError
    |
    +-- IdentifierError
    |   +-- InvalidIdentifierInputError
    |
    +-- DocumentError
    |   +-- VoucherNotFoundError
    |   +-- VoucherAlreadyReversedError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

Quick reference:

Category        | Code                      | When raised
----------------|---------------------------|-----------------------------------------
Authorization   | PERMISSION_DENIED         | Gate denied a mutating action
----------------|---------------------------|-----------------------------------------
Sequence        | SEQUENCE_OVERFLOW         | Sequence no longer fits its padded width
                | MALFORMED_SEQUENCE        | Stored identifier/counter is unparseable
                | DUPLICATE_IDENTIFIER      | Unique constraint on an identifier hit
                | ALLOCATION_FAILED         | Create-operation retries exhausted
----------------|---------------------------|-----------------------------------------
Identifier      | INVALID_IDENTIFIER_INPUT  | Formatter input empty or out of range
----------------|---------------------------|-----------------------------------------
Document        | VOUCHER_NOT_FOUND         | Voucher ID doesn't exist
                | VOUCHER_ALREADY_REVERSED  | Voucher was already reversed
----------------|---------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION    | Modifying an append-only record

Handling pattern::

    try:
        number = vouchers.allocate_and_format_voucher_number(VoucherType.EXPENSE, day)
    except SequenceOverflowError as e:
        alert(e.series, e.sequence)
    except SequenceError as e:
        log.error("allocation failed", extra={"code": e.code})

User-facing messages never come from ``str(exc)``; workflows map
``AuthorizationError`` to ``UNAUTHORIZED_MESSAGE`` and ``SequenceError`` to
``RETRY_MESSAGE`` (see ``gem_kernel.services.permission_gate`` and
``gem_kernel.services.inventory_service``).
"""


class GemKernelError(Exception):
    """
    Base exception for all gem kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "GEM_KERNEL_ERROR"


# Authorization exceptions


class AuthorizationError(GemKernelError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class PermissionDeniedError(AuthorizationError):
    """
    The actor's role does not grant the required permission.

    The message is the uniform denial text; the missing permission is kept
    as an attribute for server-side logging only.
    """

    code: str = "PERMISSION_DENIED"

    def __init__(self, message: str, permission: str | None = None):
        self.permission = permission
        super().__init__(message)


# Sequence exceptions


class SequenceError(GemKernelError):
    """Base exception for sequence allocation errors."""

    code: str = "SEQUENCE_ERROR"


class SequenceOverflowError(SequenceError):
    """
    Sequence exceeded its zero-padded width.

    Beyond the width, lexicographic order of identifiers no longer agrees
    with numeric order, so the prefix-scan allocator would go backwards.
    """

    code: str = "SEQUENCE_OVERFLOW"

    def __init__(self, series: str, sequence: int, width: int):
        self.series = series
        self.sequence = sequence
        self.width = width
        super().__init__(
            f"Sequence {sequence} for {series} exceeds {width}-digit width"
        )


class MalformedSequenceError(SequenceError):
    """Stored identifier or counter value could not be parsed."""

    code: str = "MALFORMED_SEQUENCE"

    def __init__(self, series: str, value: str):
        self.series = series
        self.value = value
        super().__init__(f"Malformed sequence value for {series}: {value!r}")


class DuplicateIdentifierError(SequenceError):
    """
    An allocated identifier collided with an existing row.

    Fatal to the enclosing transaction: the create-operation must be
    retried from scratch or aborted.
    """

    code: str = "DUPLICATE_IDENTIFIER"

    def __init__(self, entity_type: str, identifier: str):
        self.entity_type = entity_type
        self.identifier = identifier
        super().__init__(f"Duplicate {entity_type} identifier: {identifier}")


class AllocationFailedError(SequenceError):
    """Create-operation could not allocate an identifier after retrying."""

    code: str = "ALLOCATION_FAILED"

    def __init__(self, attempts: int, last_error: str):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Allocation failed after {attempts} attempt(s): {last_error}"
        )


# Identifier exceptions


class IdentifierError(GemKernelError):
    """Base exception for identifier formatting errors."""

    code: str = "IDENTIFIER_ERROR"


class InvalidIdentifierInputError(IdentifierError):
    """Formatter input is empty, negative, or otherwise unusable."""

    code: str = "INVALID_IDENTIFIER_INPUT"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


# Document exceptions


class DocumentError(GemKernelError):
    """Base exception for document (voucher, inventory) errors."""

    code: str = "DOCUMENT_ERROR"


class VoucherNotFoundError(DocumentError):
    """Voucher with given ID was not found."""

    code: str = "VOUCHER_NOT_FOUND"

    def __init__(self, voucher_id: str):
        self.voucher_id = voucher_id
        super().__init__(f"Voucher not found: {voucher_id}")


class VoucherAlreadyReversedError(DocumentError):
    """Voucher has already been reversed."""

    code: str = "VOUCHER_ALREADY_REVERSED"

    def __init__(self, voucher_number: str):
        self.voucher_number = voucher_number
        super().__init__(f"Voucher already reversed: {voucher_number}")


# Immutability exceptions


class ImmutabilityError(GemKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
