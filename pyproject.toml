[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tm25rays"
version = "0.1.0"
description = "Read, write, analyse and convert IES TM-25 ray files and Zemax binary ray files"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "TM-25",
    "ray file",
    "ray data",
    "optics",
    "photometry",
    "radiometry",
    "Zemax",
    "light source",
]
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
    "Topic :: Scientific/Engineering :: Physics",
    "Topic :: File Formats",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tm25rays = "tm25rays.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tm25rays"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
