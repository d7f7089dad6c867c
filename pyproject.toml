[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ocstats"
version = "0.1.0"
description = "In-process stats recording with tags, measures, views and aggregations"
requires-python = ">=3.10"
dependencies = []
keywords = ["stats", "metrics", "monitoring", "tags", "aggregation", "histogram"]
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
    "Topic :: System :: Monitoring",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ocstats"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
