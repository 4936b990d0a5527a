"""Exception hierarchy for the tax liability engine.

Every error raised by the engine derives from TaxCoreException so the HTTP
layer can render it without knowing the concrete type.

Error codes follow pattern: [CATEGORY][NUMBER]
- CFG: Configuration errors (unsupported tax year, malformed rule set)
- ENT: Missing or unassessable reference entities
- DAT: Data integrity errors in transactional records
- INV: Internal invariant violations
- CRD: Withholding credit allocation errors
"""

from __future__ import annotations

from typing import Any


class TaxCoreException(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with a readable message and metadata.

        Args:
            message: Human readable error message
            code: Unique error code (e.g., "CFG001")
            status_code: HTTP status code used by the API layer
            details: Optional diagnostic context (entity, year, record ids)
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


# ============================================================================
# CONFIGURATION ERRORS (CFG)
# ============================================================================

class ConfigurationError(TaxCoreException):
    """Base class for rule-set and tax-year configuration errors."""
    pass


class UnsupportedTaxYearError(ConfigurationError):
    """Tax year falls outside the supported window."""

    def __init__(self, tax_year: Any, minimum: int, maximum: int):
        message = (
            f"Tax year {tax_year} is not supported. "
            f"Only tax years {minimum} to {maximum} can be computed."
        )
        super().__init__(
            message=message,
            code="CFG001",
            status_code=400,
            details={"tax_year": tax_year, "minimum": minimum, "maximum": maximum},
        )


class MalformedRuleSetError(ConfigurationError):
    """A tax-year rule set failed validation when it was loaded."""

    def __init__(self, source: str, reason: str):
        super().__init__(
            message=f"Tax rule set '{source}' is invalid: {reason}",
            code="CFG002",
            status_code=500,
            details={"source": source, "reason": reason},
        )


# ============================================================================
# REFERENCE ERRORS (ENT)
# ============================================================================

class EntityNotFoundError(TaxCoreException):
    """Referenced taxpayer entity does not exist."""

    def __init__(self, entity_id: Any):
        super().__init__(
            message=f"Entity {entity_id} not found",
            code="ENT001",
            status_code=404,
            details={"entity_id": entity_id},
        )


class OwnedBusinessAssessmentError(TaxCoreException):
    """An owned business is assessed through its owner, never on its own."""

    def __init__(self, business_id: Any, owner_id: Any):
        super().__init__(
            message=(
                f"Business {business_id} is owned by entity {owner_id}; "
                f"its income is assessed on the owner's summary"
            ),
            code="ENT002",
            status_code=400,
            details={"entity_id": business_id, "owner_id": owner_id},
        )


# ============================================================================
# DATA INTEGRITY ERRORS (DAT)
# ============================================================================

class DataIntegrityError(TaxCoreException):
    """Base class for invalid transactional records."""
    pass


class AggregationValidationError(DataIntegrityError):
    """One or more records in the period carry an unusable amount.

    Raised instead of returning an under-counted total. ``details["records"]``
    lists every offending record so the caller can point the user at it.
    """

    def __init__(
        self,
        aggregate: str,
        entity_id: Any,
        tax_year: int,
        errors: list[dict[str, Any]],
    ):
        noun = "record" if len(errors) == 1 else "records"
        message = (
            f"Cannot compute {aggregate} for entity {entity_id} in {tax_year}: "
            f"{len(errors)} invalid {noun} found"
        )
        super().__init__(
            message=message,
            code="DAT001",
            status_code=422,
            details={
                "aggregate": aggregate,
                "entity_id": entity_id,
                "tax_year": tax_year,
                "records": errors,
            },
        )
        self.errors = errors


# ============================================================================
# INVARIANT VIOLATIONS (INV)
# ============================================================================

class InvariantViolationError(TaxCoreException):
    """An internal computation produced a value that should be impossible."""

    def __init__(self, message: str, **context: Any):
        super().__init__(
            message=message,
            code="INV001",
            status_code=500,
            details=context,
        )


# ============================================================================
# CREDIT ALLOCATION ERRORS (CRD)
# ============================================================================

class CreditAllocationConflictError(TaxCoreException):
    """Concurrent allocations kept invalidating each other."""

    def __init__(self, entity_id: Any, tax_year: int, attempts: int):
        super().__init__(
            message=(
                f"Could not allocate withholding credits for entity {entity_id} "
                f"({tax_year}) after {attempts} attempts. Please try again."
            ),
            code="CRD001",
            status_code=409,
            details={"entity_id": entity_id, "tax_year": tax_year, "attempts": attempts},
        )
