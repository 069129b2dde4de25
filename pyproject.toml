[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "forgeclaw"
version = "0.1.0"
description = "Core building blocks for an agent orchestrator: typed identifiers, error taxonomy, command and event buses, and layered TOML configuration"
requires-python = ">=3.11"
dependencies = []
keywords = [
    "agents",
    "orchestration",
    "event-bus",
    "command-bus",
    "cqrs",
    "configuration",
    "toml",
    "asyncio",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "hypothesis",
]

[tool.hatch.build.targets.wheel]
packages = ["forgeclaw"]

[tool.hatch.build.targets.sdist]
include = ["forgeclaw", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP", "SIM"]

[tool.mypy]
python_version = "3.11"
strict = true
