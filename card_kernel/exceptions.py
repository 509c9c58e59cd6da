"""
Typed Exception Hierarchy for the Card Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Batch posting must tell apart three kinds of trouble:

  - Business outcomes (bad card, overlimit, ...) are NOT exceptions.  The
    validation chain returns them as ValidationOutcome values and the
    rejection sink records them.
  - Per-record failures (unexpected errors while validating or posting one
    record) become SYSTEM_ERROR rejections and count against the skip budget.
  - Run-level failures (retry exhaustion, skip-budget overrun) abort the run.

Every exception carries a ``code`` class attribute (machine-readable) and
structured attributes (never parse the message).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CardKernelError (base)
    |
    +-- PostingError
    |   +-- DuplicateTransactionError
    |   +-- ValidationNotPassedError
    |
    +-- StorageError
    |   +-- TransientStorageError
    |
    +-- ImmutabilityViolationError
    |
    +-- BatchError
    |   +-- RetryExhaustedError
    |   +-- SkipLimitExceededError
    |   +-- PostingRunNotFoundError
    |   +-- PostingRunNotResumableError
    |   +-- InvalidRecordTransitionError
    |
    +-- ConfigError
        +-- InvalidConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                        | When Raised
--------------|-----------------------------|------------------------------------------
Posting       | DUPLICATE_TRANSACTION       | Supplied transaction id already posted
              | VALIDATION_NOT_PASSED       | Posting attempted with a failed outcome
--------------|-----------------------------|------------------------------------------
Storage       | TRANSIENT_STORAGE_ERROR     | Storage temporarily unavailable (retry)
--------------|-----------------------------|------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION      | Update/delete of an append-only record
--------------|-----------------------------|------------------------------------------
Batch         | RETRY_EXHAUSTED             | Chunk retries used up, run aborted
              | SKIP_LIMIT_EXCEEDED         | Too many system-error records, aborted
              | POSTING_RUN_NOT_FOUND       | Unknown run id on resume
              | POSTING_RUN_NOT_RESUMABLE   | Resume of a run that is not stopped
              | INVALID_RECORD_TRANSITION   | Record state machine misuse
--------------|-----------------------------|------------------------------------------
Config        | INVALID_CONFIG              | Bad pipeline configuration value
===============================================================================
"""


class CardKernelError(Exception):
    """
    Base exception for all card kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "CARD_KERNEL_ERROR"


# Posting exceptions


class PostingError(CardKernelError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class DuplicateTransactionError(PostingError):
    """A supplied transaction id is already present in posted storage."""

    code: str = "DUPLICATE_TRANSACTION"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction already posted: {transaction_id}")


class ValidationNotPassedError(PostingError):
    """The posting engine was handed an outcome that did not pass validation."""

    code: str = "VALIDATION_NOT_PASSED"

    def __init__(self, failure_code: int | None):
        self.failure_code = failure_code
        super().__init__(
            f"Cannot post a transaction that failed validation "
            f"(failure code {failure_code})"
        )


# Storage exceptions


class StorageError(CardKernelError):
    """Base exception for storage-layer errors."""

    code: str = "STORAGE_ERROR"


class TransientStorageError(StorageError):
    """
    Storage is temporarily unavailable.

    Raised by reference ports (or any storage adapter) when the failure is
    expected to clear on retry.  The chunk controller retries the whole
    chunk on this error rather than rejecting the record.
    """

    code: str = "TRANSIENT_STORAGE_ERROR"

    def __init__(self, operation: str, reason: str = ""):
        self.operation = operation
        self.reason = reason
        message = f"Transient storage failure during {operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Immutability exceptions


class ImmutabilityViolationError(CardKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} is immutable: {reason}")


# Batch exceptions


class BatchError(CardKernelError):
    """Base exception for chunk-controller errors."""

    code: str = "BATCH_ERROR"


class RetryExhaustedError(BatchError):
    """A chunk kept failing transiently after every allowed retry."""

    code: str = "RETRY_EXHAUSTED"

    def __init__(self, run_id: str, chunk_index: int, attempts: int, last_error: str):
        self.run_id = run_id
        self.chunk_index = chunk_index
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Run {run_id}: chunk {chunk_index} failed after {attempts} "
            f"attempt(s): {last_error}"
        )


class SkipLimitExceededError(BatchError):
    """More records failed with system errors than the skip limit allows."""

    code: str = "SKIP_LIMIT_EXCEEDED"

    def __init__(self, run_id: str, skip_limit: int, skipped: int):
        self.run_id = run_id
        self.skip_limit = skip_limit
        self.skipped = skipped
        super().__init__(
            f"Run {run_id}: {skipped} skipped record(s) exceeds skip limit "
            f"{skip_limit}"
        )


class PostingRunNotFoundError(BatchError):
    """No posting run with the given id exists."""

    code: str = "POSTING_RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Posting run not found: {run_id}")


class PostingRunNotResumableError(BatchError):
    """Only FAILED or CANCELLED runs can be resumed."""

    code: str = "POSTING_RUN_NOT_RESUMABLE"

    def __init__(self, run_id: str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(f"Posting run {run_id} cannot be resumed from status {status}")


class InvalidRecordTransitionError(BatchError):
    """A record attempted a state transition the lifecycle does not allow."""

    code: str = "INVALID_RECORD_TRANSITION"

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid record transition: {from_state} -> {to_state}")


# Configuration exceptions


class ConfigError(CardKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidConfigError(ConfigError):
    """A configuration value is missing or out of range."""

    code: str = "INVALID_CONFIG"

    def __init__(self, field_name: str, value: object, reason: str):
        self.field_name = field_name
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid config value for {field_name}={value!r}: {reason}")
