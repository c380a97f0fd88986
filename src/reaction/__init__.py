from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("reaction-task")
except PackageNotFoundError:
    __version__ = "unknown"
