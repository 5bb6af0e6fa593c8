from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, Mapping

import pandas as pd
import yaml

logger = logging.getLogger(__name__)

_CODE_COLUMNS = ("code", "crs_code", "atco_code", "stop_code")


def _normalize_code(value: object) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class AllowList:
    """Canonical stop/station codes visible to the rest of the pipeline."""

    codes: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_codes(cls, codes: Iterable[object]) -> "AllowList":
        normalized = {_normalize_code(code) for code in codes}
        normalized.discard("")
        return cls(codes=frozenset(normalized))

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AllowList":
        with Path(path).open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or []
        if isinstance(data, Mapping):
            data = data.get("codes") or []
        if not isinstance(data, list):
            raise TypeError("Allow-list YAML must be a list of codes or a mapping with 'codes'")
        return cls.from_codes(data)

    @classmethod
    def from_csv(cls, path: str | Path) -> "AllowList":
        df = pd.read_csv(path, dtype=str)
        if df.empty:
            return cls()
        column = next((col for col in _CODE_COLUMNS if col in df.columns), df.columns[0])
        return cls.from_codes(df[column].tolist())

    @classmethod
    def from_path(cls, path: str | Path) -> "AllowList":
        list_path = Path(path)
        if not list_path.exists():
            raise FileNotFoundError(f"Allow-list not found at {list_path}")
        if list_path.suffix.lower() in {".yaml", ".yml"}:
            allow_list = cls.from_yaml(list_path)
        elif list_path.suffix.lower() == ".csv":
            allow_list = cls.from_csv(list_path)
        else:
            raise ValueError(f"Unsupported allow-list format: {list_path.suffix!r}")
        logger.info("Loaded %d allowed codes from %s", len(allow_list), list_path)
        return allow_list

    def __contains__(self, code: object) -> bool:
        return code in self.codes

    def __iter__(self) -> Iterator[str]:
        return iter(self.codes)

    def __len__(self) -> int:
        return len(self.codes)


__all__ = ["AllowList"]
