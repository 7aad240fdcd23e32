"""Board handle: owns GPIO line requests and serializes access per line."""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional
import errno
import logging
import threading

from .gpio import GpioAdapter, LibgpiodAdapter, SimulatedGpioAdapter
from .operations import Direction, Level
from .pin_registry import LineDescriptor

LOGGER = logging.getLogger(__name__)

HARDWARE_ERRORS = (OSError, RuntimeError, ValueError)


class BoardError(RuntimeError):
    """Base class for hardware-layer failures."""


class LineAcquireError(BoardError):
    """Raised when a line cannot be requested."""


class LineBusyError(LineAcquireError):
    """Raised when a line is owned by someone else."""


class DirectionError(BoardError):
    pass


class LineReadError(BoardError):
    pass


class LineWriteError(BoardError):
    pass


class LineHandle:
    """Run-time state of one acquired line.

    ``lock`` is re-entrant: the board primitives take it themselves, and a
    caller holding it across several primitives makes the sequence atomic.
    ``direction``/``level`` are None when unknown.
    """

    def __init__(self, descriptor: LineDescriptor) -> None:
        self.descriptor = descriptor
        self.lock = threading.RLock()
        self.acquired = False
        self.direction: Optional[Direction] = None
        self.level: Optional[Level] = None

    @property
    def line(self) -> int:
        return self.descriptor.line

    def __repr__(self) -> str:
        direction = self.direction.value if self.direction else "unknown"
        return f"LineHandle(line={self.line}, acquired={self.acquired}, direction={direction})"


class Board:
    """Owns every line handle for the process lifetime.

    Hardware lines go through a libgpiod adapter that is only created on the
    first hardware acquisition; simulated lines go through an in-memory one.
    """

    def __init__(
        self,
        chip: str = "/dev/gpiochip0",
        consumer: str = "hypibole",
        hardware: Optional[GpioAdapter] = None,
        simulated: Optional[GpioAdapter] = None,
        hardware_factory: Optional[Callable[[], GpioAdapter]] = None,
    ) -> None:
        self._chip = chip
        self._consumer = consumer
        self._hardware = hardware
        self._hardware_factory = hardware_factory or (lambda: LibgpiodAdapter(chip, consumer))
        self._simulated = simulated if simulated is not None else SimulatedGpioAdapter()
        self._lock = threading.Lock()
        self._adapter_lock = threading.Lock()
        self._handles: Dict[int, LineHandle] = {}
        self._closed = False

    def acquire(
        self,
        descriptor: LineDescriptor,
        direction: Direction = Direction.INPUT,
        level: Optional[Level] = None,
    ) -> LineHandle:
        """Return the handle for a line, requesting the hardware on first use."""
        with self._lock:
            if self._closed:
                raise LineAcquireError(f"Board is closed; cannot acquire line {descriptor.line}")
            handle = self._handles.get(descriptor.line)
            if handle is None:
                handle = LineHandle(descriptor)
                self._handles[descriptor.line] = handle
            elif handle.descriptor != descriptor:
                raise LineBusyError(
                    f"Line {descriptor.line} is already owned by pin {handle.descriptor.logical_id}"
                )

        with handle.lock:
            if not handle.acquired:
                self._request(handle, direction, level)
        return handle

    def acquire_all(self, descriptors: Iterable[LineDescriptor]) -> None:
        """Acquire every line as input up front."""
        for descriptor in descriptors:
            self.acquire(descriptor, Direction.INPUT)

    def set_direction(self, handle: LineHandle, direction: Direction, level: Optional[Level] = None) -> None:
        """Switch a line's direction; outputs start at ``level`` (or the last known level)."""
        with handle.lock:
            self._require_acquired(handle)
            if handle.direction is direction:
                return
            start = level or handle.level or Level.LOW
            adapter = self._adapter_for(handle.descriptor)
            try:
                self._configure(adapter, handle.line, direction, start)
            except HARDWARE_ERRORS as exc:
                handle.direction = None
                if isinstance(exc, OSError) and exc.errno == errno.EBUSY:
                    handle.acquired = False
                    raise LineBusyError(
                        f"Line {handle.line} was claimed by another process while switching to "
                        f"{direction.value} ({exc})"
                    ) from exc
                raise DirectionError(
                    f"Failed to switch line {handle.line} to {direction.value}: {exc}; "
                    "line direction is unknown"
                ) from exc
            LOGGER.debug("Line %s switched to %s", handle.line, direction.value)
            handle.direction = direction
            if direction is Direction.OUTPUT:
                handle.level = start

    def read(self, handle: LineHandle) -> Level:
        with handle.lock:
            self._require_acquired(handle)
            adapter = self._adapter_for(handle.descriptor)
            try:
                raw = adapter.read(handle.line)
            except HARDWARE_ERRORS as exc:
                raise LineReadError(f"Failed to read line {handle.line}: {exc}") from exc
            handle.level = Level.from_int(raw)
            return handle.level

    def write(self, handle: LineHandle, level: Level) -> None:
        with handle.lock:
            self._require_acquired(handle)
            adapter = self._adapter_for(handle.descriptor)
            try:
                adapter.write(handle.line, level is Level.HIGH)
            except HARDWARE_ERRORS as exc:
                handle.level = None
                state = handle.direction.value if handle.direction else "unknown"
                raise LineWriteError(
                    f"Failed to write {level.value} to line {handle.line}: {exc}; "
                    f"line direction is {state} and its level is unknown"
                ) from exc
            handle.level = level

    def release(self, descriptor: LineDescriptor) -> None:
        """Give a line back to the system (shutdown only)."""
        with self._lock:
            handle = self._handles.pop(descriptor.line, None)
        if handle is None:
            return
        with handle.lock:
            if handle.acquired:
                try:
                    self._adapter_for(handle.descriptor).release(handle.line)
                except HARDWARE_ERRORS as exc:
                    LOGGER.warning("Failed to release line %s: %s", handle.line, exc)
                else:
                    LOGGER.info("Released line %s", handle.line)
            handle.acquired = False
            handle.direction = None
            handle.level = None

    def close(self) -> None:
        """Release every line and close the adapters."""
        with self._lock:
            self._closed = True
            handles = list(self._handles.values())
        for handle in handles:
            self.release(handle.descriptor)
        for adapter in (self._hardware, self._simulated):
            if adapter is None:
                continue
            try:
                adapter.close()
            except HARDWARE_ERRORS as exc:
                LOGGER.warning("Failed to close GPIO adapter: %s", exc)

    def handle_for(self, descriptor: LineDescriptor) -> Optional[LineHandle]:
        with self._lock:
            return self._handles.get(descriptor.line)

    def acquired_lines(self) -> List[int]:
        with self._lock:
            return sorted(line for line, handle in self._handles.items() if handle.acquired)

    def _request(self, handle: LineHandle, direction: Direction, level: Optional[Level]) -> None:
        start = level or Level.LOW
        adapter = self._adapter_for(handle.descriptor)
        try:
            self._configure(adapter, handle.line, direction, start)
        except HARDWARE_ERRORS as exc:
            if isinstance(exc, OSError) and exc.errno == errno.EBUSY:
                raise LineBusyError(f"Line {handle.line} is busy: claimed by another process ({exc})") from exc
            raise LineAcquireError(f"Failed to acquire line {handle.line}: {exc}") from exc
        handle.acquired = True
        handle.direction = direction
        handle.level = start if direction is Direction.OUTPUT else None
        LOGGER.info(
            "Acquired line %s as %s (%s)",
            handle.line,
            direction.value,
            "simulated" if handle.descriptor.simulated else self._chip,
        )

    @staticmethod
    def _configure(adapter: GpioAdapter, line: int, direction: Direction, level: Level) -> None:
        if direction is Direction.OUTPUT:
            adapter.setup_output(line, initial=level is Level.HIGH)
        else:
            adapter.setup_input(line)

    def _adapter_for(self, descriptor: LineDescriptor) -> GpioAdapter:
        if descriptor.simulated:
            return self._simulated
        with self._adapter_lock:
            if self._hardware is None:
                try:
                    self._hardware = self._hardware_factory()
                except HARDWARE_ERRORS as exc:
                    raise LineAcquireError(f"Failed to open GPIO chip {self._chip}: {exc}") from exc
                LOGGER.info("Opened GPIO chip %s", self._chip)
            return self._hardware

    @staticmethod
    def _require_acquired(handle: LineHandle) -> None:
        if not handle.acquired:
            raise LineAcquireError(f"Line {handle.line} is not acquired")
