[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hfsplusvol"
version = "0.1.0"
description = "Read and modify HFS+ volume images: volume headers, fork extents, allocation bitmap and extended attributes"
requires-python = ">=3.10"
dependencies = []
keywords = ["hfs", "hfsplus", "filesystem", "disk-image", "extents", "xattr", "tar"]
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
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["hfsplusvol"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
