"""Error kinds and error-recovery utilities for the forecasting pipeline."""

import logging
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ForecastingError(Exception):
    """Base class for every error raised by the pipeline."""

    kind: str = "forecasting_error"


class LengthMismatchError(ForecastingError, ValueError):
    """Score inputs (or aligned arrays) have unequal lengths."""

    kind = "length_mismatch"


class NotComputableError(ForecastingError, ArithmeticError):
    """A score degenerated to NaN or infinity (e.g. zero actuals in MAPE)."""

    kind = "not_computable"


class LeakageViolationError(ForecastingError):
    """A base model was fit on rows inside the validation window."""

    kind = "leakage_violation"


class IntervalInversionWarning(UserWarning):
    """An interval had upper < lower and was clamped."""


class InsufficientResamplesError(ForecastingError):
    """Bootstrap resample count is below the reliability floor."""

    kind = "insufficient_resamples"


class BaseModelFitFailure(ForecastingError):
    """A base forecaster failed to fit or to produce a complete forecast."""

    kind = "base_model_fit_failure"

    def __init__(self, model_name: str, message: str):
        super().__init__(f"{model_name}: {message}")
        self.model_name = model_name


class PipelineStateError(ForecastingError):
    """An orchestrator operation was called from the wrong stage."""

    kind = "pipeline_state"


class PipelineCancelled(ForecastingError):
    """A long-running stage observed a cancellation request."""

    kind = "cancelled"


@dataclass
class RecoveryContext:
    """Captures context for error recovery and debugging."""
    run_id: str
    stage: str = ""
    timestamp: float = field(default_factory=time.time)
    exception_type: str = ""
    error_kind: str = ""
    exception_message: str = ""
    stack_trace: str = ""
    local_variables: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_exception(
        cls, run_id: str, exc: Exception, stage: str = ""
    ) -> "RecoveryContext":
        """
        Create context from an exception.
        Captures locals from the frame where exception occurred.
        """
        stack_trace = "".join(traceback.format_tb(exc.__traceback__))

        locals_repr = {}
        if exc.__traceback__:
            ptr = exc.__traceback__
            while ptr.tb_next:
                ptr = ptr.tb_next
            frame = ptr.tb_frame

            for k, v in frame.f_locals.items():
                try:
                    val_str = str(v)
                    if len(val_str) > 500:
                        val_str = val_str[:500] + "..."
                    locals_repr[k] = val_str
                except Exception:
                    locals_repr[k] = "<unprintable>"

        return cls(
            run_id=run_id,
            stage=stage,
            exception_type=type(exc).__name__,
            error_kind=getattr(exc, "kind", "unexpected"),
            exception_message=str(exc),
            stack_trace=stack_trace,
            local_variables=locals_repr,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "run_id": self.run_id,
            "stage": self.stage,
            "timestamp": self.timestamp,
            "exception_type": self.exception_type,
            "error_kind": self.error_kind,
            "exception_message": self.exception_message,
            "stack_trace": self.stack_trace,
            "local_variables": self.local_variables,
        }


def log_failure(
    run_id: str, exc: Exception, stage: str = "", log: Optional[logging.Logger] = None
) -> RecoveryContext:
    """Log a fatal error together with its recovery context and return the context."""
    context = RecoveryContext.from_exception(run_id, exc, stage=stage)
    (log or logger).error(
        f"Run {run_id} failed during {stage or 'unknown stage'}: {exc}",
        extra={"props": context.to_dict()},
    )
    return context
