import pytest
import semver

from dss.errors import DSSError
from dss.migration import (MigrationStep, build_migration_sql,
                           enumerate_migration_steps, plan_migration,
                           resolve_target_version)

V0 = semver.Version(0, 0, 0)
V1 = semver.Version(1, 0, 0)
V2 = semver.Version(2, 0, 0)


@pytest.fixture
def schemas_dir(tmp_path):
    for name in ["upto-v1.0.0-create.sql", "downfrom-v1.0.0-drop.sql",
                 "upto-v2.0.0-extend.sql", "downfrom-v2.0.0-shrink.sql",
                 "README.md"]:
        (tmp_path / name).write_text("SELECT 1;")
    (tmp_path / "upto-v9.0.0-dir.sql").mkdir()
    return tmp_path


@pytest.fixture
def steps():
    return [
        MigrationStep(V0),
        MigrationStep(V1, "upto-v1.0.0-a.sql", "downfrom-v1.0.0-a.sql"),
        MigrationStep(V2, "upto-v2.0.0-b.sql", "downfrom-v2.0.0-b.sql"),
    ]


def test_enumerate_sorted_with_zero_first(schemas_dir):
    result = enumerate_migration_steps(schemas_dir)
    assert [step.version for step in result] == [V0, V1, V2]
    assert result[0].up_to_file == "" and result[0].down_from_file == ""
    assert result[1].up_to_file == "upto-v1.0.0-create.sql"
    assert result[1].down_from_file == "downfrom-v1.0.0-drop.sql"
    assert result[2].up_to_file == "upto-v2.0.0-extend.sql"


def test_enumerate_missing_directory(tmp_path):
    with pytest.raises(DSSError):
        enumerate_migration_steps(tmp_path / "absent")


def test_enumerate_empty_directory(tmp_path):
    assert enumerate_migration_steps(tmp_path) == [MigrationStep(V0)]


@pytest.mark.parametrize("requested", ["latest", "LATEST", "Latest"])
def test_resolve_latest(steps, requested):
    assert resolve_target_version(steps, requested) == V2


@pytest.mark.parametrize("requested", ["", "   "])
def test_resolve_blank_means_report_only(steps, requested):
    assert resolve_target_version(steps, requested) is None


def test_resolve_explicit(steps):
    assert resolve_target_version(steps, "1.0.0") == V1


def test_resolve_invalid(steps):
    with pytest.raises(DSSError):
        resolve_target_version(steps, "not-a-version")


def test_plan_up(steps):
    plan = plan_migration(steps, "scd", V0, V2)
    assert [p.sql_file for p in plan] == ["upto-v1.0.0-a.sql", "upto-v2.0.0-b.sql"]
    assert [(p.from_version, p.to_version) for p in plan] == [(V0, V1), (V1, V2)]
    assert all(p.db_name == "scd" and p.result_db_name == "scd" for p in plan)


def test_plan_down(steps):
    plan = plan_migration(steps, "scd", V2, V0)
    assert [p.sql_file for p in plan] == ["downfrom-v2.0.0-b.sql", "downfrom-v1.0.0-a.sql"]
    assert plan[-1].to_version == V0


def test_plan_nothing_to_do(steps):
    assert plan_migration(steps, "scd", V1, V1) == []
    assert plan_migration(steps, "scd", V1, None) == []


def test_plan_unknown_target(steps):
    with pytest.raises(DSSError):
        plan_migration(steps, "scd", V0, semver.Version(1, 5, 0))


def test_plan_rid_rename():
    v3 = semver.Version(3, 0, 0)
    v4 = semver.Version(4, 0, 0)
    rid_steps = [MigrationStep(V0), MigrationStep(v3, "up3.sql", "down3.sql"),
                 MigrationStep(v4, "up4.sql", "down4.sql")]

    up = plan_migration(rid_steps, "defaultdb", v3, v4)
    assert len(up) == 1
    assert up[0].db_name == "defaultdb"
    assert up[0].result_db_name == "rid"

    down = plan_migration(rid_steps, "rid", v4, v3)
    assert len(down) == 1
    assert down[0].db_name == "rid"
    assert down[0].result_db_name == "defaultdb"


def test_build_sql_recent_server():
    sql = build_migration_sql(semver.Version(22, 2, 0), "rid", "SELECT 1;")
    assert sql == ("SET enable_implicit_transaction_for_batch_statements = false;\n"
                   "USE rid;\nSELECT 1;")


def test_build_sql_old_server():
    sql = build_migration_sql(semver.Version(21, 2, 9), "scd", "SELECT 1;")
    assert sql == "USE scd;\nSELECT 1;"