[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "slacksite"
version = "0.1.0"
description = "Ingest a Slack workspace export into SQLite with full-text search, and browse it in a local web viewer"
requires-python = ">=3.10"
dependencies = [
    "jinja2",
]
keywords = ["slack", "export", "archive", "sqlite", "search", "viewer", "wsgi"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
    "Topic :: System :: Archiving",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
slack-site = "slacksite.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["slacksite"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]
