from importlib.metadata import entry_points

from chupgrade.sources.exec import ExecSource
from chupgrade.sources.file import FileSource
from chupgrade.sources.http import HttpSource

BUILTIN_SOURCES = {
    "file": FileSource,
    "http": HttpSource,
    "exec": ExecSource,
}


def load_source(kind: str):
    if kind in BUILTIN_SOURCES:
        return BUILTIN_SOURCES[kind]
    for ep in entry_points(group="chupgrade.inventory"):
        if ep.name == kind:
            return ep.load()
    raise ValueError(f"Unknown inventory source type: {kind}")
