from __future__ import annotations

import traceback
from dataclasses import dataclass


class DeliveryError(RuntimeError):
    """Base error"""


@dataclass(frozen=True, slots=True)
class StageError:
    """
    A normalized error record for stage failures.
    """

    exc_type: str
    message: str
    traceback: str

    def to_dict(self) -> dict[str, str]:
        return {
            "exc_type": self.exc_type,
            "message": self.message,
            "traceback": self.traceback,
        }


def stage_error_from_exc(exc: BaseException) -> StageError:
    return StageError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback=traceback.format_exc(),
    )


class SourceConfigurationError(DeliveryError):
    """
    Fatal at trigger time: unresolved branch, missing credential, bad provider
    parameters. No run is created.
    """


class StageFailure(DeliveryError):
    """A stage action reported failure (tests failed, build failed, deploy failed)"""


class InvalidTransitionError(DeliveryError):
    """Requested gate operation does not apply to the run's current state"""


class RunNotFoundError(DeliveryError):
    """No run with the given id"""


class RoutingConfigError(DeliveryError):
    """Rule table references unknown targets or is otherwise unusable"""


class MalformedEventError(DeliveryError):
    """
    Inbound event is missing required fields. Consumers absorb this per event.
    """


class DeliveryFailure(DeliveryError):
    """Downstream delivery (comment post, notification send) was rejected"""


class InternalError(DeliveryError):
    """Bugs or invariant violation in our code"""
