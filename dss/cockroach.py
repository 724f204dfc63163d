"""Connection parameters for the CockroachDB cluster and parsing of its version strings."""

from __future__ import annotations

import argparse
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

import semver

from dss.errors import DSSError

# Version reported for a database that has not been bootstrapped by the schema manager.
UNKNOWN_VERSION = semver.Version(0, 0, 0)

_INT16_MIN = -(1 << 15)
_INT16_MAX = (1 << 15) - 1
_DECIMAL = re.compile(r"[+-]?[0-9]+")
_SERVER_VERSION = re.compile(r"v((0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*))")


@dataclass
class Credentials:
    """Credentials used to connect."""

    username: str = ""
    password: str = ""


@dataclass
class SSL:
    """SSL configuration: the mode and the directory holding certificates."""

    mode: str = ""
    dir: str = ""


def parse_int_or_default(value: str, default: int) -> int:
    """Parse a base-10 integer that fits in 16 signed bits, else return ``default``."""
    if not _DECIMAL.fullmatch(value or ""):
        return default
    parsed = int(value)
    if not _INT16_MIN <= parsed <= _INT16_MAX:
        return default
    return parsed


def format_dsn(dsn_map: Mapping[str, str]) -> str:
    """Render the non-empty entries as sorted ``key=value`` pairs joined by spaces."""
    return " ".join(sorted(f"{key}={value}" for key, value in dsn_map.items() if value != ""))


@dataclass
class ConnectParameters:
    """Parameters used for connecting to a CockroachDB instance."""

    application_name: str = ""
    host: str = ""
    port: int = 0
    db_name: str = ""
    credentials: Credentials = field(default_factory=Credentials)
    ssl: SSL = field(default_factory=SSL)
    max_open_conns: int = 0
    max_conn_idle_seconds: int = 0
    max_retries: int = 0

    @classmethod
    def from_map(cls, m: Mapping[str, str]) -> "ConnectParameters":
        """Build parameters from a map of string settings; missing keys count as empty."""
        return cls(
            application_name=m.get("application_name", ""),
            db_name=m.get("db_name", ""),
            host=m.get("host", ""),
            port=parse_int_or_default(m.get("port", ""), 0),
            credentials=Credentials(username=m.get("user", "")),
            ssl=SSL(mode=m.get("ssl_mode", ""), dir=m.get("ssl_dir", "")),
            max_open_conns=parse_int_or_default(m.get("max_open_conns", ""), 4),
            max_conn_idle_seconds=parse_int_or_default(m.get("max_conn_idle_secs", ""), 40),
        )

    def build_dsn(self) -> str:
        """Return the key/value connection string; raises DSSError if a setting is missing."""
        dsn: dict[str, str] = {}

        user = self.credentials.username
        if not user:
            raise DSSError("Missing crdb user")
        dsn["user"] = user

        if not self.host:
            raise DSSError("Missing crdb hostname")
        dsn["host"] = self.host

        if self.port == 0:
            raise DSSError("Missing crdb port")
        dsn["port"] = str(self.port)

        dsn["application_name"] = self.application_name or "dss"
        dsn["dbname"] = self.db_name

        ssl_mode = self.ssl.mode
        if not ssl_mode:
            raise DSSError("Missing crdb ssl_mode")
        dsn["sslmode"] = ssl_mode

        dsn["pool_max_conns"] = str(self.max_open_conns)

        if ssl_mode == "disable":
            return format_dsn(dsn)

        ssl_dir = self.ssl.dir
        if not ssl_dir:
            raise DSSError("Missing crdb ssl_dir")
        dsn["sslrootcert"] = f"{ssl_dir}/ca.crt"
        dsn["sslcert"] = f"{ssl_dir}/client.{user}.crt"
        dsn["sslkey"] = f"{ssl_dir}/client.{user}.key"
        return format_dsn(dsn)


def parse_server_version(full_version: str) -> semver.Version:
    """Extract the semantic version from the server's ``version()`` text."""
    match = _SERVER_VERSION.search(full_version)
    if match is None:
        raise DSSError(f"CRDB server version not found in {full_version!r}")
    try:
        return semver.Version.parse(match.group(1))
    except ValueError as err:
        raise DSSError("CRDB server version could not be parsed in semver format",
                       cause=err) from err


def parse_schema_version(raw: str) -> semver.Version:
    """Parse a schema version as stored in a database, with an optional leading 'v'."""
    text = raw[1:] if raw.startswith("v") else raw
    try:
        return semver.Version.parse(text)
    except ValueError as err:
        raise DSSError(f"Invalid schema version {raw!r}", cause=err) from err


def add_arguments(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Register the well-known database connection options on ``parser``."""
    parser.add_argument("--cockroach_application_name", default="dss",
                        help="application name for tagging the connection to cockroach")
    parser.add_argument("--cockroach_db_name", default="dss",
                        help="name of the database to connect to")
    parser.add_argument("--cockroach_host", default="", help="cockroach host to connect to")
    parser.add_argument("--cockroach_port", type=int, default=26257,
                        help="cockroach port to connect to")
    parser.add_argument("--cockroach_ssl_mode", default="disable", help="cockroach sslmode")
    parser.add_argument("--cockroach_ssl_dir", default="",
                        help="directory to ssl certificates. Must contain files: ca.crt, "
                             "client.<user>.crt, client.<user>.key")
    parser.add_argument("--cockroach_user", default="root",
                        help="cockroach user to authenticate as")
    parser.add_argument("--max_open_conns", type=int, default=4,
                        help="maximum number of open connections to the database")
    parser.add_argument("--max_conn_idle_secs", type=int, default=30,
                        help="maximum amount of time in seconds a connection may be idle")
    parser.add_argument("--cockroach_max_retries", type=int, default=100,
                        help="maximum number of attempts to retry a query in case of contention")
    return parser


def connect_parameters_from_args(args: argparse.Namespace) -> ConnectParameters:
    """Build connection parameters from options registered by add_arguments."""
    return ConnectParameters(
        application_name=args.cockroach_application_name,
        db_name=args.cockroach_db_name,
        host=args.cockroach_host,
        port=args.cockroach_port,
        credentials=Credentials(username=args.cockroach_user),
        ssl=SSL(mode=args.cockroach_ssl_mode, dir=args.cockroach_ssl_dir),
        max_open_conns=args.max_open_conns,
        max_conn_idle_seconds=args.max_conn_idle_secs,
        max_retries=args.cockroach_max_retries,
    )