"""Classification of step handler failures."""

from __future__ import annotations

from typing import List, Optional, Tuple

from .config import ClassificationConfig, StepPolicy
from .contracts import OutcomeKind, step_key
from .errors import StepCancelledError, TransientStepError

USER_CANCELLED_MESSAGE = "Transaction rejected by user"
TRANSIENT_MESSAGE = "Wallet synchronization issue"


class ErrorClassifier:
    """Maps handler exceptions to outcome kinds.

    Signatures are substrings of the exception message. Each step kind may
    override the default signature lists through a :class:`StepPolicy`.
    """

    def __init__(
        self,
        defaults: Optional[ClassificationConfig] = None,
        policies: Optional[dict[str, StepPolicy]] = None,
    ) -> None:
        self._defaults = defaults or ClassificationConfig()
        self._policies = dict(policies or {})

    def signatures_for(self, step_id: str) -> Tuple[List[str], List[str]]:
        """Return ``(transient, cancel)`` signatures for ``step_id``."""
        transient = self._defaults.transient_signatures
        cancel = self._defaults.cancel_signatures
        policy = self._policies.get(step_key(step_id))
        if policy is not None:
            if policy.transient_signatures is not None:
                transient = policy.transient_signatures
            if policy.cancel_signatures is not None:
                cancel = policy.cancel_signatures
        return transient, cancel

    def classify(self, step_id: str, error: BaseException) -> Tuple[OutcomeKind, str]:
        """Return the outcome kind and a user-facing reason for ``error``."""
        if isinstance(error, StepCancelledError):
            return OutcomeKind.USER_CANCELLED, str(error) or USER_CANCELLED_MESSAGE
        if isinstance(error, TransientStepError):
            return OutcomeKind.TRANSIENT, str(error) or TRANSIENT_MESSAGE

        message = str(error)
        transient, cancel = self.signatures_for(step_id)
        if any(sig in message for sig in cancel):
            return OutcomeKind.USER_CANCELLED, USER_CANCELLED_MESSAGE
        if any(sig in message for sig in transient):
            return OutcomeKind.TRANSIENT, TRANSIENT_MESSAGE
        return OutcomeKind.FATAL, message or type(error).__name__
