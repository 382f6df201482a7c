"""Run request parsed from dashboard query parameters."""

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class RunRequest:
    """Tests to run and the environment overrides to run them with."""

    ids: Sequence[int]
    variables: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_query(cls, ids: str | None, variables: str | None) -> "RunRequest":
        """Build a request from the raw ``ids`` and ``vars`` query values."""
        return cls(ids=parse_ids(ids or ""), variables=parse_variables(variables))


def parse_ids(raw: str) -> Sequence[int]:
    """Parse comma-separated test ids, dropping invalid and duplicate ones."""
    ids: list[int] = []
    for part in raw.split(","):
        try:
            value = int(part.strip())
        except ValueError:
            continue
        if value > 0 and value not in ids:
            ids.append(value)
    return ids


def parse_variables(raw: str | None) -> Mapping[str, str]:
    """Parse the JSON ``vars`` object; malformed payloads mean no overrides."""
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        log.debug("Ignoring malformed run variables: %r", raw)
        return {}
    if not isinstance(data, dict):
        log.debug("Ignoring non-object run variables: %r", raw)
        return {}
    variables: dict[str, str] = {}
    for key, value in data.items():
        if value is None:
            continue
        text = value if isinstance(value, str) else json.dumps(value)
        if not _is_valid_name(key) or "\0" in text:
            log.debug("Ignoring unusable run variable: %r", key)
            continue
        variables[key] = text
    return variables


def _is_valid_name(key: str) -> bool:
    # Names the OS refuses in a process environment
    return bool(key) and "=" not in key and "\0" not in key
