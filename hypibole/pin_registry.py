"""Pin whitelist registry for hypibole.

Maps caller-supplied pin identifiers onto whitelisted line descriptors through
two tables: the logical (BCM line number) table and the physical header table.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging
import re

LOGGER = logging.getLogger(__name__)

_DECIMAL = re.compile(r"[0-9]+")


class PinNotFoundError(LookupError):
    """Raised when an identifier is absent from both tables."""

    def __init__(self, identifier: Any) -> None:
        super().__init__(f"Could not find pin {identifier} in either map.")
        self.identifier = identifier


class RegistryError(ValueError):
    """Raised when the whitelist tables are inconsistent."""


@dataclass(frozen=True)
class LineDescriptor:
    """Canonical record for one whitelisted GPIO line."""

    line: int
    logical_id: str
    physical_id: Optional[str] = None
    simulated: bool = False
    gettable: bool = True
    settable: bool = True


def normalize_identifier(identifier: Any) -> str:
    """Canonicalize a pin token for lookup.

    ``4``, ``"04"`` and ``"GPIO4"`` all become ``"4"``; other tokens are
    stripped and upper-cased so header ids match case-insensitively.
    Only ASCII digits count as a line number.
    """
    if isinstance(identifier, int):
        return str(identifier)
    stripped = str(identifier).strip()
    upper = stripped.upper()
    if upper.startswith("GPIO") and _DECIMAL.fullmatch(upper[4:]):
        return upper[4:].lstrip("0") or "0"
    if _DECIMAL.fullmatch(stripped):
        return stripped.lstrip("0") or "0"
    return upper


class PinRegistry:
    """Immutable pair of lookup tables; safe to share between threads."""

    def __init__(
        self,
        by_logical_id: Mapping[Any, LineDescriptor],
        by_physical_id: Optional[Mapping[Any, LineDescriptor]] = None,
    ) -> None:
        logical = {normalize_identifier(k): v for k, v in by_logical_id.items()}
        physical = {normalize_identifier(k): v for k, v in (by_physical_id or {}).items()}
        if len(logical) != len(by_logical_id):
            raise RegistryError("Logical pin table has keys that collide after normalization")
        if by_physical_id is not None and len(physical) != len(by_physical_id):
            raise RegistryError("Physical pin table has keys that collide after normalization")

        for key in logical.keys() & physical.keys():
            if logical[key] != physical[key]:
                raise RegistryError(
                    f"Pin id {key} names line {logical[key].line} in the logical map "
                    f"and line {physical[key].line} in the physical map"
                )

        self._by_logical_id = MappingProxyType(logical)
        self._by_physical_id = MappingProxyType(physical)

    @classmethod
    def from_whitelist(
        cls,
        gets: Iterable[int],
        sets: Iterable[int],
        simgets: Iterable[int] = (),
        simsets: Iterable[int] = (),
        header: Optional[Mapping[Any, int]] = None,
    ) -> "PinRegistry":
        """Build the tables from get/set whitelists and header aliases."""
        gets_set = {int(v) for v in gets}
        sets_set = {int(v) for v in sets}
        simgets_set = {int(v) for v in simgets}
        simsets_set = {int(v) for v in simsets}

        real_lines = gets_set | sets_set
        sim_lines = simgets_set | simsets_set
        shadowed = sorted(real_lines & sim_lines)
        if shadowed:
            LOGGER.warning("Simulated lines %s are also hardware lines; hardware takes priority", shadowed)

        physical_by_line: Dict[int, str] = {}
        for raw_id, raw_line in (header or {}).items():
            line = int(raw_line)
            if line not in real_lines and line not in sim_lines:
                raise RegistryError(f"Header pin {raw_id} maps to line {line}, which is not whitelisted")
            if line in physical_by_line:
                raise RegistryError(
                    f"Line {line} has two header ids: {physical_by_line[line]} and {raw_id}"
                )
            physical_by_line[line] = str(raw_id).strip()

        logical: Dict[str, LineDescriptor] = {}
        for line in sorted(real_lines | sim_lines):
            if line < 0:
                raise RegistryError(f"Invalid line number {line}")
            simulated = line not in real_lines
            get_list, set_list = (simgets_set, simsets_set) if simulated else (gets_set, sets_set)
            logical[str(line)] = LineDescriptor(
                line=line,
                logical_id=str(line),
                physical_id=physical_by_line.get(line),
                simulated=simulated,
                gettable=line in get_list,
                settable=line in set_list,
            )

        physical = {pid: logical[str(line)] for line, pid in physical_by_line.items()}
        return cls(logical, physical)

    @property
    def by_logical_id(self) -> Mapping[str, LineDescriptor]:
        return self._by_logical_id

    @property
    def by_physical_id(self) -> Mapping[str, LineDescriptor]:
        return self._by_physical_id

    def resolve(self, identifier: Any) -> LineDescriptor:
        """Return the descriptor for an identifier (raises PinNotFoundError)."""
        key = normalize_identifier(identifier)
        descriptor = self._by_logical_id.get(key)
        if descriptor is None:
            descriptor = self._by_physical_id.get(key)
        if descriptor is None:
            raise PinNotFoundError(identifier)
        return descriptor

    def descriptors(self) -> List[LineDescriptor]:
        """Return every distinct descriptor ordered by line."""
        unique = {d.line: d for d in self._by_logical_id.values()}
        for descriptor in self._by_physical_id.values():
            unique.setdefault(descriptor.line, descriptor)
        return [unique[line] for line in sorted(unique)]

    def __len__(self) -> int:
        return len(self.descriptors())

    def __contains__(self, identifier: Any) -> bool:
        key = normalize_identifier(identifier)
        return key in self._by_logical_id or key in self._by_physical_id
