"""GPIO line adapters for hypibole (libgpiod-backed and simulated)."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Set
import errno
import logging
import os

LOGGER = logging.getLogger(__name__)


class GpioAdapter:
    """Abstract line-level GPIO adapter.

    ``setup_input``/``setup_output`` request the line on first use and
    reconfigure it in place afterwards.
    """

    def setup_input(self, line: int) -> None:
        raise NotImplementedError

    def setup_output(self, line: int, initial: bool = False) -> None:
        raise NotImplementedError

    def read(self, line: int) -> int:
        raise NotImplementedError

    def write(self, line: int, value: bool) -> None:
        raise NotImplementedError

    def release(self, line: int) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return


class SimulatedGpioAdapter(GpioAdapter):
    """In-memory lines for development and tests.

    Lines start low and keep their last level when switched to input.
    ``busy_lines`` behave as if another process holds them.
    """

    def __init__(self, busy_lines: Iterable[int] = ()) -> None:
        self._values: Dict[int, int] = {}
        self._requested: Set[int] = set()
        self._outputs: Set[int] = set()
        self._busy = {int(line) for line in busy_lines}

    def setup_input(self, line: int) -> None:
        self._claim(line)
        self._requested.add(line)
        self._outputs.discard(line)
        self._values.setdefault(line, 0)

    def setup_output(self, line: int, initial: bool = False) -> None:
        self._claim(line)
        self._requested.add(line)
        self._outputs.add(line)
        self._values[line] = 1 if initial else 0

    def read(self, line: int) -> int:
        self._require(line)
        return int(self._values.get(line, 0))

    def write(self, line: int, value: bool) -> None:
        self._require(line)
        if line not in self._outputs:
            raise OSError(errno.EPERM, f"line {line} is not configured as output")
        self._values[line] = 1 if value else 0

    def release(self, line: int) -> None:
        self._requested.discard(line)
        self._outputs.discard(line)

    def close(self) -> None:
        self._requested.clear()
        self._outputs.clear()

    def is_output(self, line: int) -> bool:
        return line in self._outputs

    def _claim(self, line: int) -> None:
        if line in self._busy:
            raise OSError(errno.EBUSY, os.strerror(errno.EBUSY))

    def _require(self, line: int) -> None:
        if line not in self._requested:
            raise OSError(errno.EINVAL, f"line {line} is not requested")


class LibgpiodAdapter(GpioAdapter):
    """Line adapter over the libgpiod bindings (v1 and v2 APIs).

    Every line keeps a single request from first setup until release.
    Direction changes are applied to that request, so the line is not
    handed back to the kernel between operations.
    """

    def __init__(self, chip: str = "/dev/gpiochip0", consumer: str = "hypibole") -> None:
        self._chip_path = chip
        self._consumer = consumer
        self._held: Dict[int, Any] = {}
        self._chip: Optional[Any] = None
        try:
            import gpiod
        except ImportError as exc:
            raise RuntimeError("gpiod is required for GPIO access (pip install hypibole[gpio])") from exc
        self._gpiod = gpiod

        if hasattr(gpiod, "request_lines"):
            self._backend = "v2"
            # 2.0 exposed the enums under gpiod.line; later releases re-export them.
            line_mod = getattr(gpiod, "line", None)
            self._Direction = getattr(gpiod, "LineDirection", None) or getattr(line_mod, "Direction", None)
            self._Value = getattr(gpiod, "LineValue", None) or getattr(line_mod, "Value", None)
            self._LineSettings = getattr(gpiod, "LineSettings", None)
            if not all((self._Direction, self._Value, self._LineSettings)):
                raise RuntimeError("Unsupported gpiod v2 API")
        else:
            self._backend = "v1"
            self._chip = gpiod.Chip(chip)

    @property
    def backend(self) -> str:
        return self._backend

    def setup_input(self, line: int) -> None:
        if self._backend == "v2":
            self._apply_v2(line, self._LineSettings(direction=self._Direction.INPUT))
        else:
            self._apply_v1(line, "set_direction_input", (), type=self._gpiod.LINE_REQ_DIR_IN)

    def setup_output(self, line: int, initial: bool = False) -> None:
        if self._backend == "v2":
            settings = self._LineSettings(direction=self._Direction.OUTPUT, output_value=self._v2_value(initial))
            self._apply_v2(line, settings)
        else:
            raw = 1 if initial else 0
            self._apply_v1(line, "set_direction_output", (raw,), type=self._gpiod.LINE_REQ_DIR_OUT, default_vals=[raw])

    def read(self, line: int) -> int:
        held = self._held[line]
        if self._backend == "v2":
            return 1 if held.get_value(line) == self._Value.ACTIVE else 0
        return 1 if held.get_value() else 0

    def write(self, line: int, value: bool) -> None:
        held = self._held[line]
        if self._backend == "v2":
            held.set_value(line, self._v2_value(value))
        else:
            held.set_value(1 if value else 0)

    def release(self, line: int) -> None:
        held = self._held.pop(line, None)
        if held is None:
            return
        try:
            held.release()
        except OSError as exc:
            LOGGER.debug("Releasing line %s failed: %s", line, exc)

    def close(self) -> None:
        for line in list(self._held):
            self.release(line)
        if self._chip is not None:
            try:
                self._chip.close()
            except OSError as exc:
                LOGGER.debug("Closing %s failed: %s", self._chip_path, exc)
            self._chip = None

    def _apply_v2(self, line: int, settings: Any) -> None:
        held = self._held.get(line)
        if held is not None and hasattr(held, "reconfigure_lines"):
            held.reconfigure_lines(config={line: settings})
            return
        self.release(line)
        self._held[line] = self._gpiod.request_lines(
            self._chip_path,
            consumer=self._consumer,
            config={line: settings},
        )

    def _apply_v1(self, line: int, switch: str, switch_args: tuple, **request_kwargs: Any) -> None:
        held = self._held.get(line)
        if held is not None and hasattr(held, switch):
            getattr(held, switch)(*switch_args)
            return
        self.release(line)
        line_obj = self._chip.get_line(line)
        line_obj.request(consumer=self._consumer, **request_kwargs)
        self._held[line] = line_obj

    def _v2_value(self, value: bool) -> Any:
        return self._Value.ACTIVE if value else self._Value.INACTIVE
