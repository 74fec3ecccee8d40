[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "y86sim"
version = "0.1.0"
description = "Y86-64 instruction set simulator, assembler and HCL code generator"
requires-python = ">=3.10"
dependencies = []
keywords = ["y86", "y86-64", "assembler", "simulator", "isa", "hcl", "education"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Emulators",
    "Topic :: Software Development :: Assemblers",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
yas = "y86sim.assembler:main"
yis = "y86sim.yis:main"

[tool.hatch.build.targets.wheel]
packages = ["y86sim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
