# dss

Building blocks for a Discovery and Synchronization Service (DSS): the
shared service that lets several UAS Service Suppliers operating in the same
area find each other's data without the DSS holding operation details.

The package has these modules:

- `dss.errors` – coded errors (`DSSError`, `ErrorCode`, `get_code`,
  `root_cause`) and `handle`, which logs an error under a fresh ID and returns
  the message meant for the client. Ready-made errors for geometry problems
  are provided too, such as `bad_coord_set()` and `area_too_large()`.
- `dss.auth` – bearer-token authorization of requests: `Authorizer`,
  `Configuration`, `AuthorizationResult`, the key resolvers
  `MemoryKeyResolver`, `FileKeyResolver` (RSA public keys in PEM files) and
  `JWKSResolver` (a JSON Web Key Set endpoint), `ScopeSet`, `Claims`, and the
  helpers `has_scope`, `validate_scopes`,
  `describe_authorization_expectations` and `get_token`.
- `dss.cockroach` – `ConnectParameters` and DSN building for CockroachDB,
  `add_arguments` / `connect_parameters_from_args` for command-line options,
  and `parse_server_version` / `parse_schema_version`.
- `dss.migration` – discovery and planning of schema migration steps from
  `upto-vX.Y.Z-*.sql` / `downfrom-vX.Y.Z-*.sql` files.
- `dss.core_service` – pieces of the core service: a WSGI middleware that
  answers `/healthy` with `ok`, `validate_oauth`, `create_key_resolver`,
  `set_deprecating_http_flag` and `retry_delays`.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## Examples

Build a CockroachDB DSN:

```python
from dss.cockroach import ConnectParameters

params = ConnectParameters.from_map(
    {"host": "localhost", "port": "26257", "user": "root", "ssl_mode": "disable"}
)
print(params.build_dsn())
# application_name=dss host=localhost pool_max_conns=4 port=26257 sslmode=disable user=root
```

A missing host, port, user or SSL mode, or a missing SSL directory when SSL
is enabled, raises `DSSError`.

Check scopes against a set of authorization options; satisfying any one
option is enough:

```python
from dss.auth import has_scope, validate_scopes

options = [{"Auth1": ["required1"]}, {"Auth2": ["required3", "required4"]}]
print(validate_scopes(options, ["required3", "required4"]))  # (True, '')
print(has_scope(["utm.strategic_coordination"], "utm.strategic_coordination"))  # True
```

Authorize a request's headers. The authorizer refreshes its keys in a
background thread every `key_refresh_timeout` seconds; use it as a context
manager (or call `close()`) to stop that thread:

```python
from dss.auth import Authorizer, Configuration, MemoryKeyResolver

config = Configuration(
    key_resolver=MemoryKeyResolver([public_key]),
    accepted_audiences=["dss.example.com"],
)
with Authorizer(config) as authorizer:
    result = authorizer.authorize({"Authorization": "Bearer token"}, [])
    print(result.error)  # Access token validation failed: ...
```

Tokens must carry a subject and an issuer, and must not expire more than an
hour ahead.

Plan a schema migration:

```python
import semver
from dss.migration import (
    build_migration_sql, enumerate_migration_steps, plan_migration, resolve_target_version,
)

steps = enumerate_migration_steps("db_schemas/rid")
target = resolve_target_version(steps, "latest")
for step in plan_migration(steps, "rid", semver.Version(0, 0, 0), target):
    print(step.sql_file, step.from_version, "->", step.to_version)
```

`build_migration_sql` prefixes a script with `USE <db>;` and, for servers at
22.2.0 or later, with the setting that disables implicit transactions for
batch statements.

## What this package does not do

The package provides parts, not a running service. It has no HTTP server or
API routes, no command-line programs, and does not connect to a database or
execute migrations itself: `dss.migration` only works out which files to run
and in what order. It does not compute geospatial coverings or model
airspace volumes, and it does not issue tokens.

## Running the tests

```
pytest
```