[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tierstore"
version = "0.1.0"
description = "File-backed object storage server with access tracking, storage tiering recommendations and cluster replication helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["object storage", "tiering", "replication", "cluster", "wsgi"]
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
    "Topic :: System :: Distributed Computing",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tierstore = "tierstore.server:main"

[tool.hatch.build.targets.wheel]
packages = ["tierstore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
