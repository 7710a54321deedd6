[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fetrunner"
version = "0.1.0"
description = "Drive several FET timetable generation runs in parallel, relaxing constraints until a timetable is found"
requires-python = ">=3.10"
dependencies = []
keywords = ["timetable", "fet", "scheduling", "constraints", "school"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Scheduling",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
fetrunner = "fetrunner.main:main"

[tool.hatch.build.targets.wheel]
packages = ["fetrunner"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
