[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pgroutine"
version = "0.1.0"
description = "Routine PostgreSQL maintenance over a DB-API connection: session cleanup, index bloat control, partition upkeep and threshold-driven vacuum/analyze."
requires-python = ">=3.10"
dependencies = []
keywords = ["postgresql", "maintenance", "vacuum", "analyze", "bloat", "reindex", "partitions", "sessions"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Database",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pgroutine"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
