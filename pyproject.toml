[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "matchcontrol"
version = "0.1.0"
description = "Match flow, scoring, rankings, displays and driver station packets for a robotics competition field."
requires-python = ">=3.10"
dependencies = []
keywords = ["robotics", "competition", "field", "match", "scoring", "rankings"]
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
    "Topic :: Games/Entertainment :: Simulation",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["matchcontrol"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
