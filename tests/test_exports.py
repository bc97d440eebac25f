"""Tests for the package surface.

Verifies the public exports resolve and uses AST inspection to keep the
library modules free of console output (only the CLI prints).
"""

import ast
import importlib
import pathlib

import pytest

SRC_ROOT = pathlib.Path(__file__).resolve().parent.parent / "src" / "fintrack_backup"


def _library_files() -> list[pathlib.Path]:
    """All .py files under src/fintrack_backup/ except the CLI."""
    return sorted(p for p in SRC_ROOT.rglob("*.py") if "cli" not in p.relative_to(SRC_ROOT).parts)


class TestExports:
    @pytest.mark.parametrize(
        "module",
        [
            "fintrack_backup",
            "fintrack_backup.backup",
            "fintrack_backup.stores",
            "fintrack_backup.config",
            "fintrack_backup.errors",
        ],
    )
    def test_all_names_resolve(self, module) -> None:
        """Every name in __all__ is an attribute of the module."""
        mod = importlib.import_module(module)
        missing = [name for name in mod.__all__ if not hasattr(mod, name)]
        assert missing == []

    def test_version(self) -> None:
        import fintrack_backup

        assert fintrack_backup.__version__ == "0.1.0"


class TestNoConsoleOutput:
    """Library modules report through logging, never print()."""

    def test_no_print_calls(self) -> None:
        offenders: list[str] = []
        for py_file in _library_files():
            tree = ast.parse(py_file.read_text())
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Name)
                    and node.func.id == "print"
                ):
                    offenders.append(f"{py_file}:{node.lineno}")
        assert offenders == [], "print() found in library code:\n" + "\n".join(offenders)

    def test_library_files_found(self) -> None:
        assert any(p.name == "engine.py" for p in _library_files())
