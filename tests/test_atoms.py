"""Tests for atom loading and script assembly."""

from __future__ import annotations

from pathlib import Path

import pytest

from wirtap.atoms import AtomCatalog
from wirtap.errors import AtomNotFoundError


@pytest.fixture
def catalog(tmp_path: Path) -> AtomCatalog:
    (tmp_path / "echo.js").write_text("function (a, b) { return [a, b]; }\n", encoding="utf-8")
    (tmp_path / "get_element_from_cache.js").write_text("function (f) { return window; }", encoding="utf-8")
    return AtomCatalog(tmp_path)


def test_script_calls_atom_with_json_arguments(catalog: AtomCatalog) -> None:
    script = catalog.get_script("echo", ["x", [None, 1]])

    assert script == '(function (a, b) { return [a, b]; })("x",[null, 1])'


def test_async_callback_is_appended_after_arguments(catalog: AtomCatalog) -> None:
    assert catalog.get_script("echo", [], async_callback="cb").endswith(")(cb,true)")
    assert catalog.get_script("echo", [1], async_callback="cb").endswith(")(1,cb,true)")


def test_frames_wrap_the_script_once_per_frame(catalog: AtomCatalog) -> None:
    script = catalog.get_script("echo", [1], frames=["outer", 0])

    assert script.count("var document = window.document") == 2
    assert '"outer"' in script


def test_sources_are_cached(catalog: AtomCatalog, tmp_path: Path) -> None:
    first = catalog.get_atom("echo")
    (tmp_path / "echo.js").write_text("changed", encoding="utf-8")

    assert catalog.get_atom("echo") == first


def test_missing_atom_raises_file_not_found(catalog: AtomCatalog) -> None:
    with pytest.raises(AtomNotFoundError) as exc_info:
        catalog.get_atom("nope")

    assert isinstance(exc_info.value, FileNotFoundError)


def test_packaged_atoms_are_available() -> None:
    catalog = AtomCatalog()

    assert catalog.get_atom("execute_script").startswith("function")
    assert catalog.get_atom("execute_async_script").startswith("function")
