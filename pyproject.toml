[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "memdis"
version = "0.1.0"
description = "An in-memory key-value database engine with a Redis-compatible command interface"
requires-python = ">=3.10"
dependencies = []
keywords = ["redis", "database", "in-memory", "key-value", "resp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["memdis"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
