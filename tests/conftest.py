import argparse
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import mkpdh_defs  # noqa: E402


PREPROCESSOR_OUTPUT = (
    b"# 1 \"<stdin>\"\n"
    b"#define __STDC__ 1\n"
    b"# 1 \"/usr/share/mingw-w64/include/pdhmsg.h\" 1 3\n"
    b"#define _PDH_MSG_H_ \n"
    b"#define PDH_CSTATUS_VALID_DATA ((DWORD)0x00000000L)\n"
    b"#define PDH_CSTATUS_NEW_DATA ((DWORD)0x00000001L)\n"
    b"#define PDH_CSTATUS_NO_MACHINE ((DWORD)0x800007D0L)\n"
    b"#define UNRELATED 2\n"
    b"#define PDH_MORE_DATA ((DWORD)0x800007D2L)\n"
)
PREPROCESSOR_NAMES = [
    "PDH_CSTATUS_VALID_DATA",
    "PDH_CSTATUS_NEW_DATA",
    "PDH_CSTATUS_NO_MACHINE",
    "PDH_MORE_DATA",
]


@pytest.fixture
def preprocessor_output() -> bytes:
    return PREPROCESSOR_OUTPUT


@pytest.fixture
def make_args(tmp_path: Path) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {"output": str(tmp_path / "defs.go")}
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def generate_config(tmp_path: Path) -> mkpdh_defs.GenerateConfig:
    return mkpdh_defs.GenerateConfig(output=tmp_path / "defs_pdh_windows.go")


@pytest.fixture
def fake_tools() -> tuple[Callable[[str], bytes], Callable[[Path], None], list]:
    """Collaborators for run_generate that record every call in order."""
    calls: list[tuple[str, object]] = []

    def _expand(include_text: str) -> bytes:
        calls.append(("expand", include_text))
        return PREPROCESSOR_OUTPUT

    def _format(path: Path) -> None:
        calls.append(("format", path))

    return _expand, _format, calls
