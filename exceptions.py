"""
Custom Exception Hierarchy - Domain-specific error types

Provides clear, typed exceptions for the failure modes of the statement
selection engine. All custom exceptions inherit from CivicPulseError so the
weighting service can absorb the whole family at its boundary while letting
programming errors (TypeError, KeyError, ...) propagate to the caller.

Design Philosophy:
- Exceptions are data: Include context for debugging
- Fail explicitly: Better to raise specific exception than generic
- Catch specifically: Handler can distinguish error types
- Log contextually: Exception attributes enable rich logging
"""

from typing import Optional, Dict, Any


class CivicPulseError(Exception):
    """Base exception for all civicpulse errors

    All custom exceptions inherit from this, enabling:
    - Catch all civicpulse errors with single except clause
    - Distinguish our errors from library errors
    - Add common attributes (context, original_error)
    - Check if error is retryable via is_retryable property
    """

    # Default: errors are not retryable (permanent failure)
    _retryable: bool = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Check if this error represents a transient failure that should be retried.

        Returns:
            True for transient failures (connection drops, pool exhaustion)
            False for permanent failures (unknown poll, validation)
        """
        return self._retryable

    def __str__(self):
        base_msg = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


# ========== Database Errors ==========


class DatabaseError(CivicPulseError):
    """Database operation failures

    Examples:
    - Query errors
    - Transaction rollbacks
    - Unreadable cached rows
    """
    pass


class DatabaseConnectionError(DatabaseError):
    """Failed to establish or maintain database connection"""
    _retryable = True


class DataIntegrityError(DatabaseError):
    """Data integrity constraint violation

    Examples:
    - Foreign key violations
    - Unique constraint violations
    - Check constraint failures
    """

    def __init__(self, message: str, table: Optional[str] = None, constraint: Optional[str] = None):
        self.table = table
        self.constraint = constraint
        context = {}
        if table:
            context['table'] = table
        if constraint:
            context['constraint'] = constraint
        super().__init__(message, context)


# ========== Selection Engine Errors ==========


class PollNotFoundError(CivicPulseError):
    """Poll has no clustering eligibility record (unknown poll id)"""

    def __init__(self, poll_id: str):
        self.poll_id = poll_id
        super().__init__("Poll not found", {'poll_id': poll_id})


class StatementNotFoundError(CivicPulseError):
    """Statement id is not an approved statement of the poll"""

    def __init__(self, poll_id: str, statement_id: str):
        self.poll_id = poll_id
        self.statement_id = statement_id
        super().__init__(
            "Statement not found",
            {'poll_id': poll_id, 'statement_id': statement_id},
        )


class WeightComputationError(CivicPulseError):
    """Weight could not be computed from the available signals

    Examples:
    - Required upstream signal missing
    - Signal outside its documented range
    """

    def __init__(
        self,
        message: str,
        poll_id: Optional[str] = None,
        statement_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.poll_id = poll_id
        self.statement_id = statement_id
        self.original_error = original_error

        context = {}
        if poll_id:
            context['poll_id'] = poll_id
        if statement_id:
            context['statement_id'] = statement_id
        if original_error:
            context['original_error'] = str(original_error)

        super().__init__(message, context)


# ========== Configuration Errors ==========


class ConfigurationError(CivicPulseError):
    """Configuration or environment errors

    Examples:
    - Invalid threshold
    - Unknown default order mode
    """

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        context = {}
        if config_key:
            context['config_key'] = config_key
        super().__init__(message, context)


# ========== Validation Errors ==========


class ValidationError(CivicPulseError):
    """Data validation failures

    Examples:
    - Weight outside (0, 1]
    - Negative vote count
    - Agreement rate outside [0, 1]
    """

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        self.field = field
        self.value = value

        context = {}
        if field:
            context['field'] = field
        if value is not None:
            context['value'] = str(value)

        super().__init__(message, context)
