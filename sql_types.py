"""Value types shared by the dump classifier, alter decomposer, resolver and differ."""

from __future__ import annotations

import dataclasses
import enum


class SqlParseError(ValueError):
    """A statement, clause or column fragment could not be parsed."""

    code = "PARSE_ERROR"

    def __init__(self, msg: str, code: str | None = None) -> None:
        super().__init__(msg)
        if code:
            self.code = code


class StatementParseError(SqlParseError):
    code = "BAD_STATEMENT"


class ColumnParseError(SqlParseError):
    code = "BAD_COLUMN"


class AlterParseError(SqlParseError):
    code = "BAD_ALTER_CLAUSE"


class ResolutionError(RuntimeError):
    """Dependency ordering reached a state no real schema can produce."""


class AlterType(str, enum.Enum):
    PRIMARY = "PRIMARY"
    MODIFY = "MODIFY"
    FOREIGN = "FOREIGN"
    UNIQUE = "UNIQUE"
    INDEX = "INDEX"


@dataclasses.dataclass(frozen=True)
class ForeignKey:
    table: str
    column: str


@dataclasses.dataclass(frozen=True)
class KeyInfo:
    name: str | None
    columns: tuple[str, ...]
    column: str | None = None
    ref: ForeignKey | None = None


@dataclasses.dataclass(frozen=True)
class ColumnDef:
    type: str
    datatype: str
    is_unsigned: bool = False
    typesize: int = 0
    length: int = 0
    is_nullable: bool = True
    # None means the column has no DEFAULT clause; DEFAULT NULL is "NULL".
    default: str | None = None
    is_auto_increment: bool = False
    is_primary: bool = False
    unique: tuple[KeyInfo, ...] = ()
    index: tuple[KeyInfo, ...] = ()
    foreign: tuple[KeyInfo, ...] = ()
    fragment: str = dataclasses.field(default="", compare=False)


@dataclasses.dataclass(frozen=True)
class TableInfo:
    name: str
    columns: dict[str, ColumnDef] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class AlterParsed:
    type: AlterType
    name: str | None = None
    column: str | None = None
    columns: tuple[str, ...] = ()
    ref: ForeignKey | None = None
    definition: ColumnDef | None = None


@dataclasses.dataclass(frozen=True)
class AlterSplit:
    table: str | None
    key: list[str] = dataclasses.field(default_factory=list)
    foreign: list[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass(frozen=True)
class TableDeps:
    table: str
    dependencies: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class FailedQuery:
    code: int | str | None
    msg: str
    query: str


@dataclasses.dataclass(frozen=True)
class ParsedNames:
    tables: list[str] = dataclasses.field(default_factory=list)
    views: list[str] = dataclasses.field(default_factory=list)
    functions: list[str] = dataclasses.field(default_factory=list)
    procedures: list[str] = dataclasses.field(default_factory=list)
    triggers: list[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass(frozen=True)
class ParsedQuery:
    functions: list[str] = dataclasses.field(default_factory=list)
    procedures: list[str] = dataclasses.field(default_factory=list)
    triggers: list[str] = dataclasses.field(default_factory=list)
    table: list[str] = dataclasses.field(default_factory=list)
    alter: list[str] = dataclasses.field(default_factory=list)
    view: list[str] = dataclasses.field(default_factory=list)
    insert: dict[str, list[str]] = dataclasses.field(default_factory=dict)
    drop: list[str] = dataclasses.field(default_factory=list)
    sort: list[str] = dataclasses.field(default_factory=list)
    misc: list[str] = dataclasses.field(default_factory=list)
    names: ParsedNames = dataclasses.field(default_factory=ParsedNames)
    tables: dict[str, TableInfo] = dataclasses.field(default_factory=dict)

    def statement_count(self) -> int:
        buckets = (
            self.functions,
            self.procedures,
            self.triggers,
            self.table,
            self.alter,
            self.view,
            self.drop,
            self.misc,
        )
        return sum(len(b) for b in buckets) + sum(len(v) for v in self.insert.values())


@dataclasses.dataclass(frozen=True)
class ColumnDiff:
    status: str
    source: str | None = None
    target: str | None = None


DiffReport = dict[str, dict[str, ColumnDiff]]


@dataclasses.dataclass(frozen=True)
class ColCompDetail:
    name: str
    detail: str


@dataclasses.dataclass(frozen=True)
class TableCompare:
    new: list[ColCompDetail] = dataclasses.field(default_factory=list)
    same: list[ColCompDetail] = dataclasses.field(default_factory=list)
    mod: list[ColCompDetail] = dataclasses.field(default_factory=list)
    nomore: list[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass(frozen=True)
class ConnResponse:
    status: bool
    error: object | None = None
    data: object | None = None
