"""Connection settings and import options, optionally read from a YAML file."""

from __future__ import annotations

import dataclasses
import enum
import logging
from pathlib import Path

try:
    import yaml
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required. Install with: pip install pyyaml") from exc

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class WithData(str, enum.Enum):
    ALL = "all"
    SINGLE = "single"
    NONE = "none"


@dataclasses.dataclass(frozen=True)
class SqlConfig:
    host: str = "localhost"
    port: int = 3306
    user: str | None = None
    password: str | None = None
    database: str | None = None
    charset: str | None = None
    verbose: int = 1


@dataclasses.dataclass(frozen=True)
class ImportOptions:
    with_data: WithData = WithData.ALL
    drop_first: bool = True
    close_connection: bool = False


def coerce_with_data(value: object) -> WithData:
    """Map the loosely typed ``withData`` setting onto a :class:`WithData` policy.

    ``True`` and ``1`` load every row as written, ``"single"``/``"SINGLE"``
    and ``2`` load rows one INSERT at a time, ``None`` means the default
    (all rows). Anything else, ``False`` and ``0`` included, loads no rows.
    """
    if value is None:
        return WithData.ALL
    if isinstance(value, WithData):
        return value
    if value is True or (type(value) is int and value == 1):
        return WithData.ALL
    if value in ("single", "SINGLE") or (type(value) is int and value == 2):
        return WithData.SINGLE
    return WithData.NONE


def log_level(verbose: int) -> int:
    if verbose <= 0:
        return logging.WARNING
    if verbose == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(verbose: int) -> None:
    logging.basicConfig(level=log_level(verbose), format=LOG_FORMAT)


def load_config(path: Path) -> tuple[SqlConfig, ImportOptions]:
    """Read ``db:`` and ``import:`` sections from a YAML file.

    Unknown keys are ignored with a warning; missing sections fall back to
    the defaults.
    """
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")

    db = raw.get("db") or {}
    fields = {f.name for f in dataclasses.fields(SqlConfig)}
    for key in sorted(set(db) - fields):
        logger.warning("%s: ignoring unknown db setting %r", path, key)
    config = SqlConfig(**{k: v for k, v in db.items() if k in fields})

    section = raw.get("import") or {}
    options = ImportOptions(
        with_data=coerce_with_data(section.get("withData", section.get("with_data"))),
        drop_first=bool(section.get("dropFirst", section.get("drop_first", True))),
        close_connection=bool(section.get("closeConnection", section.get("close_connection", False))),
    )
    return config, options
