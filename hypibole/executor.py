"""Board operation executor: the get/set contract exposed to transports."""

from __future__ import annotations

import logging

from .board import Board, BoardError, LineBusyError
from .operations import Failure, FailureKind, Level, Operation, OperationRequest, Outcome, Success
from .pin_registry import LineDescriptor, PinNotFoundError, PinRegistry

LOGGER = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Raised for requests rejected before any hardware access."""


class BoardExecutor:
    """Resolve a request, run it on its line under the line lock, report the outcome.

    ``execute`` never raises; every error becomes a ``Failure``.
    """

    def __init__(self, registry: PinRegistry, board: Board) -> None:
        self.registry = registry
        self.board = board

    def execute(self, request: OperationRequest) -> Outcome:
        pin = str(request.pin).strip()
        try:
            descriptor = self.registry.resolve(request.pin)
            level = self._validate(request, descriptor, pin)
            return self._run(request.operation, descriptor, pin, level)
        except PinNotFoundError as exc:
            return Failure(str(exc), FailureKind.RESOLUTION)
        except ValidationError as exc:
            return Failure(str(exc), FailureKind.VALIDATION)
        except LineBusyError as exc:
            LOGGER.warning("Pin %s: %s", pin, exc)
            return Failure(str(exc), FailureKind.LIFECYCLE)
        except BoardError as exc:
            LOGGER.error("Pin %s: %s", pin, exc)
            return Failure(str(exc), FailureKind.HARDWARE)
        except Exception as exc:
            LOGGER.exception("Board operation %s on pin %s failed", request.operation, pin)
            return Failure(f"Unexpected error: {exc}", FailureKind.HARDWARE)

    @staticmethod
    def _validate(request: OperationRequest, descriptor: LineDescriptor, pin: str):
        if request.operation is Operation.GET:
            if not descriptor.gettable:
                raise ValidationError(f"Pin {pin} is not in the get whitelist.")
            return None
        if request.operation is Operation.SET:
            if not descriptor.settable:
                raise ValidationError(f"Pin {pin} is not in the set whitelist.")
            if request.level is None:
                raise ValidationError("Did not get level argument required for set.")
            try:
                return Level.parse(request.level)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
        raise ValidationError(f'Unrecognized operation parameter: "{request.operation}"')

    def _run(self, operation: Operation, descriptor: LineDescriptor, pin: str, level) -> Success:
        handle = self.board.acquire(descriptor, operation.direction, level)
        with handle.lock:
            if operation is Operation.GET:
                self.board.set_direction(handle, operation.direction)
                return Success(operation, pin, self.board.read(handle))
            self.board.set_direction(handle, operation.direction, level)
            self.board.write(handle, level)
            LOGGER.debug("Pin %s (line %s) set %s", pin, descriptor.line, level.value)
            return Success(operation, pin, level)
