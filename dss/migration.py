"""Discovery and planning of database schema migration steps."""

from __future__ import annotations

import os
import re
from collections.abc import Sequence
from dataclasses import dataclass

import semver

from dss.errors import DSSError

# Files describing migration steps: upto-v1.2.3-anything.sql or downfrom-v1.2.3-anything.sql
MIGRATION_STEP_PATTERN = re.compile(r"(upto|downfrom)-v(\d+)\.(\d+)\.(\d+)-(.*)\.sql")

_BATCH_TRANSACTION_SETTING = "SET enable_implicit_transaction_for_batch_statements = false;\n"
_IMPLICIT_TRANSACTION_MIN_SERVER = semver.Version(22, 2, 0)


@dataclass(frozen=True)
class MigrationStep:
    """A schema version with the files migrating up to it and down from it."""

    version: semver.Version
    up_to_file: str = ""
    down_from_file: str = ""


@dataclass(frozen=True)
class PlannedStep:
    """One migration to run: which file, in which database, between which versions.

    ``result_db_name`` is the database holding the schema once the step has run.
    """

    sql_file: str
    db_name: str
    from_version: semver.Version
    to_version: semver.Version
    result_db_name: str


def enumerate_migration_steps(path: str | os.PathLike) -> list[MigrationStep]:
    """List the migration steps found in ``path``, sorted by version.

    The first entry is always version 0.0.0, which has no files.
    """
    found: dict[tuple[int, int, int], dict[str, str]] = {}
    try:
        entries = list(os.scandir(path))
    except OSError as err:
        raise DSSError("Failed to read schema files directory", cause=err) from err

    for entry in entries:
        if entry.is_dir():
            continue
        match = MIGRATION_STEP_PATTERN.search(entry.name)
        if match is None:
            continue
        key = (int(match.group(2)), int(match.group(3)), int(match.group(4)))
        files = found.setdefault(key, {"upto": "", "downfrom": ""})
        files[match.group(1)] = entry.name

    steps = [MigrationStep(version=semver.Version(0, 0, 0))]
    for key in sorted(found):
        files = found[key]
        steps.append(MigrationStep(version=semver.Version(*key),
                                   up_to_file=files["upto"],
                                   down_from_file=files["downfrom"]))
    return steps


def resolve_target_version(steps: Sequence[MigrationStep],
                           db_version: str) -> semver.Version | None:
    """Interpret the requested version: "latest", blank (None, meaning report only) or x.y.z."""
    if db_version.lower() == "latest":
        if not steps:
            raise DSSError("no migration definitions found")
        return steps[-1].version
    if db_version.strip() == "":
        return None
    try:
        return semver.Version.parse(db_version)
    except ValueError as err:
        raise DSSError("failed to parse desired db_version", cause=err) from err


def plan_migration(steps: Sequence[MigrationStep], db_name: str,
                   current_version: semver.Version,
                   target_version: semver.Version | None) -> list[PlannedStep]:
    """Work out the steps that take ``db_name`` from the current to the target version.

    The remote ID database is named ``defaultdb`` below 4.0.0 and ``rid`` from 4.0.0 on.
    """
    if target_version is None:
        return []
    steps = list(steps)
    if not any(step.version == target_version for step in steps):
        raise DSSError(f"no migration definition for target version {target_version}")

    index = -1
    for i, step in enumerate(steps):
        if step.version == current_version:
            index = i

    plan: list[PlannedStep] = []
    current = current_version
    while current != target_version:
        if current < target_version:
            new_index = index + 1
            if new_index >= len(steps):
                raise DSSError(f"no migration step above version {current}")
            sql_file = steps[new_index].up_to_file
        else:
            new_index = index - 1
            if index < 0 or new_index < 0:
                raise DSSError(f"no migration step below version {current}")
            sql_file = steps[index].down_from_file
        new_version = steps[new_index].version
        if not sql_file:
            raise DSSError(f"no migration file to migrate {current} to {new_version}")

        result_db = db_name
        if db_name == "defaultdb" and str(new_version) == "4.0.0" and new_index > index:
            result_db = "rid"
        if db_name == "rid" and str(current) == "4.0.0" and new_index < index:
            result_db = "defaultdb"

        plan.append(PlannedStep(sql_file=sql_file, db_name=db_name, from_version=current,
                                to_version=new_version, result_db_name=result_db))
        db_name = result_db
        current = new_version
        index = new_index
    return plan


def build_migration_sql(server_version: semver.Version, db_name: str, raw_sql: str) -> str:
    """Prefix a migration script with the session settings and the database to use."""
    prefix = ""
    if server_version.compare(_IMPLICIT_TRANSACTION_MIN_SERVER) >= 0:
        prefix = _BATCH_TRANSACTION_SETTING
    return f"{prefix}USE {db_name};\n{raw_sql}"