[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dss"
version = "0.1.0"
description = "Discovery and Synchronization Service building blocks: coded errors, bearer-token authorization, CockroachDB connection settings and schema migration planning."
requires-python = ">=3.10"
keywords = [
    "dss",
    "utm",
    "remote-id",
    "uas",
    "jwt",
    "oauth",
    "cockroachdb",
    "migrations",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Database",
    "Topic :: Security",
    "Typing :: Typed",
]
dependencies = [
    "pyjwt>=2.8",
    "cryptography>=41",
    "semver>=3.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
]

[tool.hatch.build.targets.wheel]
packages = ["dss"]

[tool.hatch.build.targets.sdist]
include = ["dss", "tests", "README.md"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
