"""gitcoach: risk checks, adaptive confirmations and guided conflict resolution for git."""


from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
import re


DIST = "git-coach"

_VERSION_LINE = re.compile(r'^version\s*=\s*"([^"]+)"', re.MULTILINE)


def _source_tree_version() -> str:
    """Version declared next to an uninstalled checkout."""
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
    try: match = _VERSION_LINE.search(pyproject.read_text("utf-8"))
    except OSError: match = None
    return match.group(1) if match else "0+local"


try: __version__ = version(DIST)
except PackageNotFoundError: __version__ = _source_tree_version()
