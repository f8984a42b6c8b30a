"""Share-store schema migrations and the linter that keeps them re-runnable.

SQL files named ``NNN_description.sql`` live next to this module and are
applied in sequence order by deployment tooling (``supabase db push`` or
psql). Nothing here executes SQL.

A migration must be safe to apply twice. The linter enforces that on DDL
statements outside ``$$`` function bodies:

  - CREATE TABLE and CREATE [UNIQUE] INDEX carry IF NOT EXISTS
  - functions are created with CREATE OR REPLACE
  - DROP TABLE, DROP INDEX and DROP FUNCTION carry IF EXISTS
  - ADD COLUMN without IF NOT EXISTS is reported as a warning only
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, NamedTuple

MIGRATIONS_DIR = Path(__file__).parent

_FILENAME = re.compile(r'(\d{3})_.+\.sql')


class _Rule(NamedTuple):
    pattern: re.Pattern[str]
    message: str
    blocking: bool


def _rule(regex: str, message: str, *, blocking: bool = True) -> _Rule:
    return _Rule(re.compile(regex, re.IGNORECASE), message, blocking)


_RULES = (
    _rule(r'^create\s+table\s+(?!if\s+not\s+exists)', 'CREATE TABLE without IF NOT EXISTS'),
    _rule(r'^create\s+(?:unique\s+)?index\s+(?!if\s+not\s+exists)', 'CREATE INDEX without IF NOT EXISTS'),
    _rule(r'^create\s+function\b', 'CREATE FUNCTION without OR REPLACE'),
    _rule(r'^drop\s+(?:table|index|function)\s+(?!if\s+exists)', 'DROP without IF EXISTS'),
    _rule(r'\badd\s+column\s+(?!if\s+not\s+exists)', 'ADD COLUMN without IF NOT EXISTS', blocking=False),
)


@dataclass(frozen=True, slots=True)
class MigrationFile:
    sequence: int
    filename: str
    path: Path


@dataclass
class ValidationResult:
    path: Path
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def discover_migrations(directory: Path | None = None) -> list[MigrationFile]:
    """Migration files in ``directory`` ordered by sequence number.

    Raises:
        ValueError: Two files claim the same sequence number.
    """
    by_sequence: dict[int, MigrationFile] = {}
    for path in (directory or MIGRATIONS_DIR).iterdir():
        match = _FILENAME.fullmatch(path.name)
        if match is None or not path.is_file():
            continue
        sequence = int(match.group(1))
        clash = by_sequence.get(sequence)
        if clash is not None:
            first, second = sorted((clash.filename, path.name))
            raise ValueError(f'Duplicate migration sequence {sequence:03d}: {first} and {second}')
        by_sequence[sequence] = MigrationFile(sequence, path.name, path)
    return [by_sequence[seq] for seq in sorted(by_sequence)]


def _ddl_lines(sql: str) -> Iterator[tuple[int, str]]:
    """Numbered non-comment lines outside ``$$`` bodies."""
    inside_body = False
    for number, raw in enumerate(sql.splitlines(), start=1):
        line = raw.strip()
        if line.count('$$') % 2:
            inside_body = not inside_body
            continue
        if inside_body or not line or line.startswith('--'):
            continue
        yield number, line


def validate_sql(sql: str, path: Path | None = None) -> ValidationResult:
    result = ValidationResult(path=path or Path('<sql>'))
    for number, line in _ddl_lines(sql):
        for rule in _RULES:
            if rule.pattern.search(line):
                bucket = result.errors if rule.blocking else result.warnings
                bucket.append(f'Line {number}: {rule.message}')
    return result


def validate_idempotency(sql_path: Path) -> ValidationResult:
    return validate_sql(sql_path.read_text(encoding='utf-8'), sql_path)


def validate_all(directory: Path | None = None) -> dict[str, ValidationResult]:
    """Lint results for every discovered migration, keyed by filename."""
    return {m.filename: validate_idempotency(m.path) for m in discover_migrations(directory)}


def check_sequence_gaps(migrations: list[MigrationFile]) -> list[str]:
    gaps = []
    for earlier, later in zip(migrations, migrations[1:]):
        expected = earlier.sequence + 1
        if later.sequence != expected:
            gaps.append(
                f'Gap in sequence: {earlier.sequence:03d} -> {later.sequence:03d} '
                f'(expected {expected:03d})'
            )
    return gaps
