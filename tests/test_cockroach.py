import argparse

import pytest
import semver

from dss.cockroach import (ConnectParameters, add_arguments,
                           connect_parameters_from_args, format_dsn,
                           parse_int_or_default, parse_schema_version,
                           parse_server_version)
from dss.errors import DSSError


def test_build_dsn_valid():
    params = {
        "host": "localhost",
        "port": "26257",
        "user": "root",
        "ssl_mode": "enable",
        "ssl_dir": "/tmp",
    }
    assert ConnectParameters.from_map(params).build_dsn() == (
        "application_name=dss host=localhost pool_max_conns=4 port=26257 "
        "sslcert=/tmp/client.root.crt sslkey=/tmp/client.root.key sslmode=enable "
        "sslrootcert=/tmp/ca.crt user=root"
    )


def test_build_dsn_ssl_disabled():
    params = {
        "host": "localhost",
        "port": "26257",
        "user": "root",
        "ssl_mode": "disable",
    }
    assert ConnectParameters.from_map(params).build_dsn() == (
        "application_name=dss host=localhost pool_max_conns=4 port=26257 "
        "sslmode=disable user=root"
    )


@pytest.mark.parametrize("params", [
    {"port": "26257", "user": "root", "ssl_mode": "enable", "ssl_dir": "/tmp"},
    {"host": "localhost", "user": "root", "ssl_mode": "enable", "ssl_dir": "/tmp"},
    {"host": "localhost", "port": "26257", "ssl_mode": "enable", "ssl_dir": "/tmp"},
    {"host": "localhost", "port": "26257", "user": "root", "ssl_dir": "/tmp"},
    {"host": "localhost", "port": "26257", "user": "root", "ssl_mode": "enable"},
], ids=["missing host", "missing port", "missing user", "missing ssl_mode",
        "missing ssl_dir"])
def test_build_dsn_missing_settings(params):
    with pytest.raises(DSSError):
        ConnectParameters.from_map(params).build_dsn()


def test_format_dsn():
    assert format_dsn({"keyA": "valueA", "keyB": "valueB"}) == "keyA=valueA keyB=valueB"


def test_format_dsn_skips_empty_values():
    assert format_dsn({"b": "2", "a": "", "c": "3"}) == "b=2 c=3"


@pytest.mark.parametrize("value,default,expected", [
    ("26257", 0, 26257),
    ("", 4, 4),
    ("abc", 40, 40),
    ("40000", 7, 7),
    ("-12", 0, -12),
    (" 12", 3, 3),
])
def test_parse_int_or_default(value, default, expected):
    assert parse_int_or_default(value, default) == expected


def test_from_map_defaults():
    params = ConnectParameters.from_map({})
    assert params.port == 0
    assert params.max_open_conns == 4
    assert params.max_conn_idle_seconds == 40


def test_parse_server_version():
    version = parse_server_version("CockroachDB CCL v24.1.3 (x86_64-pc-linux-gnu, built)")
    assert version == semver.Version(24, 1, 3)


def test_parse_server_version_without_version():
    with pytest.raises(DSSError):
        parse_server_version("CockroachDB CCL unknown")


def test_parse_schema_version_strips_prefix():
    assert parse_schema_version("v3.1.1") == semver.Version(3, 1, 1)
    assert parse_schema_version("4.0.0") == semver.Version(4, 0, 0)


def test_parse_schema_version_invalid():
    with pytest.raises(DSSError):
        parse_schema_version("")


def test_arguments_defaults():
    args = add_arguments(argparse.ArgumentParser()).parse_args([])
    params = connect_parameters_from_args(args)
    assert params.application_name == "dss"
    assert params.db_name == "dss"
    assert params.host == ""
    assert params.port == 26257
    assert params.ssl.mode == "disable"
    assert params.credentials.username == "root"
    assert params.max_open_conns == 4
    assert params.max_conn_idle_seconds == 30
    assert params.max_retries == 100


def test_arguments_parsed_into_dsn():
    args = add_arguments(argparse.ArgumentParser()).parse_args(
        ["--cockroach_host", "localhost", "--cockroach_db_name", "rid"])
    dsn = connect_parameters_from_args(args).build_dsn()
    assert dsn == ("application_name=dss dbname=rid host=localhost pool_max_conns=4 "
                   "port=26257 sslmode=disable user=root")