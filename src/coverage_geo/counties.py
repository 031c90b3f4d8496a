"""Static per-state county name dataset."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)


class CountyDataset:
    """Read-only mapping of 2-letter state code -> county names.

    The file format is a single JSON object, e.g.
    ``{"MD": ["Allegany", "Anne Arundel", ...], ...}``.
    """

    def __init__(self, data: Mapping[str, list[str]]):
        self._data = {
            str(state).upper(): [str(c) for c in counties]
            for state, counties in data.items()
        }

    @classmethod
    def from_file(cls, path: Path | str) -> "CountyDataset":
        """Load the dataset from a JSON file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a JSON object of lists
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"County data not found: {path}")

        with open(path, "r", encoding="utf8") as fh:
            data = json.load(fh)

        if not isinstance(data, dict) or not all(isinstance(v, list) for v in data.values()):
            raise ValueError(f"County data in {path} must map state codes to lists of names")

        logger.info(f"Loaded counties for {len(data)} states from {path}")
        return cls(data)

    def for_state(self, state_code: str) -> list[str]:
        """Counties of a state in file order (empty for unknown states)."""
        return list(self._data.get(str(state_code).strip().upper(), []))

    def has_state(self, state_code: str) -> bool:
        return bool(self.for_state(state_code))

    def states(self) -> list[str]:
        return sorted(self._data)
