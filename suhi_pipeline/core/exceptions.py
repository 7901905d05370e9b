"""Unified pipeline exception taxonomy.

Provides a shared base exception hierarchy for every pipeline stage and
catalog adapter. Every domain exception inherits from ``PipelineError``
and carries structured context fields that identify which stage, feature
and date range triggered it.

Taxonomy categories
-------------------
- ``ValidationError``: input/contract violations, never retryable.
- ``TransientError``: temporary failures (network, cancellation), retryable.
- ``PermanentError``: unrecoverable domain failures, not retryable.
- ``ContractError``: wiring/schema drift between stages, never retryable.

Domain errors
-------------
- ``EmptyInputCollection``: a temporal/spatial filter left zero scenes.
- ``DataUnavailable``: a zonal reduction found no valid pixels.
- ``InvalidGeometry``: buffering/difference produced an unusable polygon.
- ``NumericDomainError``: emissivity <= 0 reached the log inversion.
- ``PixelLimitExceeded``: a reduction exceeded the pixel ceiling.
- ``ReductionCancelled``: a reduction was abandoned via its cancel token.

Every exception exposes ``to_error_dict()`` for a stable structured
error payload suitable for logging and run metadata.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all pipeline-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage where the error occurred
            (e.g. ``"composite_lst"``, ``"rural_matched"``).
        code: Machine-readable error code (e.g. ``"DATA_UNAVAILABLE"``).
        retryable: Whether the caller may retry the operation.
        feature: Name of the feature/polygon being processed, if any.
        date_range: ``"start/end"`` date range being processed, if any.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        feature: str = "",
        date_range: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.feature = feature
        self.date_range = date_range
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ContractError):
            return "contract"
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

    def attribute(self, *, stage: str = "", feature: str = "", date_range: str = "") -> None:
        """Fill in attribution fields that are still empty.

        Fields set closer to the failure win over those supplied by the
        orchestrator.
        """
        self.stage = self.stage or stage
        self.feature = self.feature or feature
        self.date_range = self.date_range or date_range

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "feature": self.feature,
            "date_range": self.date_range,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(PipelineError):
    """Input or domain-model validation failure. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(PipelineError):
    """Temporary failure that may succeed on retry."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(PipelineError):
    """Unrecoverable domain failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class ContractError(PipelineError):
    """Wiring or schema drift between pipeline stages. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class DataUnavailable(PermanentError):
    """A zonal reduction over a mask/polygon pair had no valid pixels."""

    default_code = "DATA_UNAVAILABLE"


class EmptyInputCollection(DataUnavailable):
    """A temporal/spatial filter yielded zero scenes before a temporal reducer."""

    default_code = "EMPTY_INPUT_COLLECTION"


class InvalidGeometry(ValidationError):
    """Buffering/difference produced an invalid or empty polygon."""

    default_code = "INVALID_GEOMETRY"


class NumericDomainError(PermanentError):
    """A value outside a formula's domain reached the computation."""

    default_code = "NUMERIC_DOMAIN_ERROR"


class PixelLimitExceeded(ValidationError):
    """A reduction would touch more pixels than the configured ceiling."""

    default_code = "PIXEL_LIMIT_EXCEEDED"


class ReductionCancelled(TransientError):
    """A long-running reduction was abandoned through its cancel token."""

    default_code = "REDUCTION_CANCELLED"
