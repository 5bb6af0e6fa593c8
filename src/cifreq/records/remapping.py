from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentifierRemapping:
    """Raw location identifier -> replacement identifier, or ``None`` to drop it.

    Covers identifiers in the timetable that do not line up with the reference
    stop data, e.g. ``9100CNNBELL`` -> ``9100CNNB``.
    """

    mappings: Dict[str, Optional[str]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "IdentifierRemapping":
        if not isinstance(data, Mapping):
            raise TypeError("Identifier remapping must be a mapping of raw -> target identifiers")
        if "mappings" in data and isinstance(data["mappings"], Mapping):
            data = data["mappings"]
        parsed: Dict[str, Optional[str]] = {}
        for raw_key, raw_target in data.items():
            key = str(raw_key or "").strip()
            if not key:
                raise ValueError("Identifier remapping keys cannot be empty")
            if raw_target is not None and not isinstance(raw_target, (str, int)):
                raise TypeError(f"Remapping target for {key} must be a string or null")
            target = str(raw_target).strip() if raw_target is not None else ""
            parsed[key] = target or None
        dropped = sum(1 for target in parsed.values() if target is None)
        logger.debug("Loaded %d identifier remappings (%d drop rules)", len(parsed), dropped)
        return cls(mappings=parsed)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "IdentifierRemapping":
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Identifier remapping YAML not found at {config_path}")
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        return cls.from_mapping(data)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.mappings

    def __len__(self) -> int:
        return len(self.mappings)

    def apply(self, identifier: str) -> Optional[str]:
        """Return the identifier to use, or ``None`` when it must be dropped."""
        if identifier in self.mappings:
            return self.mappings[identifier]
        return identifier


__all__ = ["IdentifierRemapping"]
