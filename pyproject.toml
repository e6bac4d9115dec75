[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "railcollector"
version = "0.1.0"
description = "Coverage intervals, gap finding, credit budgeting and coverage reports for a metrics and log collector."
requires-python = ">=3.10"
keywords = ["monitoring", "metrics", "logs", "coverage", "gap-filling", "rate-limiting"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "wcwidth",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["railcollector"]

[tool.pytest.ini_options]
addopts = "-ra"
