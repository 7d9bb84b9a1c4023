"""
Scope/Complexity Registry - static lookup from node type to the OAuth
scopes it needs and a relative execution-cost weight.

The mapping is owned by the connector catalog; the built-in table covers
the Google connectors. Unknown node types degrade gracefully: no scopes
and DEFAULT_WEIGHT, never an error. The registry is read-only once built,
so the validator can share it across threads and tasks without locking.
"""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 2

GMAIL_SEND = "https://www.googleapis.com/auth/gmail.send"
GMAIL_READONLY = "https://www.googleapis.com/auth/gmail.readonly"
SHEETS = "https://www.googleapis.com/auth/spreadsheets"
SHEETS_READONLY = "https://www.googleapis.com/auth/spreadsheets.readonly"
DRIVE_FILE = "https://www.googleapis.com/auth/drive.file"
DRIVE_READONLY = "https://www.googleapis.com/auth/drive.readonly"
CALENDAR = "https://www.googleapis.com/auth/calendar"
CALENDAR_READONLY = "https://www.googleapis.com/auth/calendar.readonly"

BUILTIN_SCOPES: dict[str, list[str]] = {
    "gmail.send": [GMAIL_SEND],
    "gmail.read": [GMAIL_READONLY],
    "sheets.read": [SHEETS_READONLY],
    "sheets.write": [SHEETS],
    "sheets.append": [SHEETS],
    "drive.read": [DRIVE_READONLY],
    "drive.write": [DRIVE_FILE],
    "calendar.read": [CALENDAR_READONLY],
    "calendar.write": [CALENDAR],
    "trigger.gmail.new_email": [GMAIL_READONLY],
    "trigger.sheets.row_added": [SHEETS_READONLY],
    "action.gmail.send": [GMAIL_SEND],
    "action.sheets.append": [SHEETS],
    "action.drive.create_file": [DRIVE_FILE],
}

BUILTIN_WEIGHTS: dict[str, int] = {
    "trigger.time": 1,
    "trigger.time.cron": 1,
    "trigger.webhook": 2,
    "trigger.gmail.new_email": 3,
    "trigger.sheets.row_added": 2,
    "action.gmail.send": 3,
    "action.sheets.append": 2,
    "action.drive.create_file": 2,
    "action.http.request": 4,
    "gmail.send": 3,
    "sheets.append": 2,
    "http.request": 4,
    "condition.if": 2,
    "loop.foreach": 5,
    "transform.data_mapper": 3,
    "utility.delay": 1,
    "utility.logger": 1,
}


class ScopeRegistry:
    """
    Immutable node-type → (scopes, weight) lookup.

    Example:
        registry = ScopeRegistry.default()
        registry.scopes_for("action.gmail.send")
        # ('https://www.googleapis.com/auth/gmail.send',)
        registry.weight_for("action.gmail.send")  # 3
        registry.weight_for("action.unknown")  # 2
    """

    def __init__(
        self,
        scopes: Mapping[str, list[str] | tuple[str, ...]] | None = None,
        weights: Mapping[str, int | float] | None = None,
        default_weight: int | float = DEFAULT_WEIGHT,
    ):
        self._scopes = MappingProxyType(
            {node_type: tuple(values) for node_type, values in (scopes or {}).items()}
        )
        self._weights = MappingProxyType(dict(weights or {}))
        self.default_weight = default_weight

    @classmethod
    def default(cls) -> "ScopeRegistry":
        """Registry with the built-in Google connector mapping."""
        return cls(BUILTIN_SCOPES, BUILTIN_WEIGHTS)

    @classmethod
    def from_file(cls, path: str | Path, merge_builtin: bool = True) -> "ScopeRegistry":
        """
        Load a registry exported by the connector catalog.

        The file holds ``{"scopes": {type: [scope, ...]}, "weights": {type: n}}``;
        both sections are optional. Entries override the built-in table unless
        ``merge_builtin`` is False.

        Raises:
            ValueError: If the file is not valid JSON or has the wrong shape
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8-sig") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Registry file {path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Registry file {path} must contain a JSON object")

        scopes = data.get("scopes", {})
        weights = data.get("weights", {})
        if not isinstance(scopes, dict) or not isinstance(weights, dict):
            raise ValueError(f"Registry file {path}: 'scopes' and 'weights' must be objects")

        if merge_builtin:
            scopes = {**BUILTIN_SCOPES, **scopes}
            weights = {**BUILTIN_WEIGHTS, **weights}

        logger.debug(
            f"Loaded registry from {path}: {len(scopes)} scoped types, {len(weights)} weights"
        )
        return cls(scopes, weights)

    def scopes_for(self, node_type: str) -> tuple[str, ...]:
        """Scopes a node type requires; empty for unknown types."""
        return self._scopes.get(node_type, ())

    def weight_for(self, node_type: str) -> int | float:
        """Complexity weight of a node type; default_weight for unknown types."""
        return self._weights.get(node_type, self.default_weight)

    def knows(self, node_type: str) -> bool:
        return node_type in self._scopes or node_type in self._weights

    def __contains__(self, node_type: object) -> bool:
        return isinstance(node_type, str) and self.knows(node_type)
