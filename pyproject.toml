[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "aosnet"
version = "0.1.0"
description = "Length-prefixed TCP session framework with an echo server and a load-testing client"
requires-python = ">=3.10"
dependencies = []
keywords = ["tcp", "server", "session", "echo", "load-testing", "asyncio", "networking"]
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
    "Framework :: AsyncIO",
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Testing :: Traffic Generation",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
aosnet-echo-server = "aosnet.echo_server:main"
aosnet-load-client = "aosnet.load_client:main"

[tool.hatch.build.targets.wheel]
packages = ["aosnet"]

[tool.pytest.ini_options]
addopts = "-ra"
