[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "landingplanner"
version = "0.1.0"
description = "Safe landing area detection, landing waypoint generation and jerk-limited trajectory simulation for multicopters"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["drone", "landing", "planner", "trajectory", "elevation grid", "uav"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["landingplanner"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
