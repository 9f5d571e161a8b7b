"""Every source module opens with its own path as a comment."""
from pathlib import Path

import pytest

PACKAGE = Path(__file__).resolve().parent.parent
MODULES = sorted(p for p in PACKAGE.rglob("*.py") if "tests" not in p.relative_to(PACKAGE).parts)


@pytest.mark.parametrize("path", MODULES, ids=lambda p: str(p.relative_to(PACKAGE)))
def test_path_header(path):
    first = path.read_text(encoding="utf-8").splitlines()[0]
    assert first == f"# slatedesk/{path.relative_to(PACKAGE).as_posix()}"
