"""Atom catalog: load portable script fragments and assemble calls to them.

An atom is a JavaScript function expression stored as ``<name>.js``. Calls are
built as ``(<source>)(<json args>)``, optionally nested inside frame windows.

PUBLIC API:
  - AtomCatalog: Cached atom loader and script builder
  - DEFAULT_ATOMS_DIR: Directory of atoms shipped with the package
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any

from wirtap.errors import AtomNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_ATOMS_DIR = Path(__file__).parent / "scripts"

FRAME_ATOM = "get_element_from_cache"


def _atoms_stringify(value: Any) -> str:
    return json.dumps(value)


class AtomCatalog:
    """Loads atoms from a directory, caching each source after first read.

    Args:
        atoms_dir: Directory holding ``<name>.js`` files.
    """

    def __init__(self, atoms_dir: Path | str | None = None):
        self.atoms_dir = Path(atoms_dir) if atoms_dir else DEFAULT_ATOMS_DIR
        self._cache: dict[str, str] = {}
        self._lock = threading.Lock()

    def get_atom(self, name: str) -> str:
        """Return the source of atom name.

        Raises:
            AtomNotFoundError: If the file cannot be read.
        """
        with self._lock:
            if name in self._cache:
                return self._cache[name]

        path = self.atoms_dir / f"{name}.js"
        try:
            source = path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise AtomNotFoundError(f"Unable to load Atom '{name}' from file '{path}'") from e

        with self._lock:
            self._cache[name] = source
        return source

    def _wrap_for_frame(self, script: str, frame: Any) -> str:
        logger.debug(f"Wrapping script for frame '{frame}'")
        frame_src = self.get_atom(FRAME_ATOM)
        return (
            f"(function (window) {{ var document = window.document; return ({script}); }})"
            f"(({frame_src})({_atoms_stringify(frame)}))"
        )

    def get_script(
        self,
        name: str,
        args: list | None = None,
        frames: list | None = None,
        async_callback: str | None = None,
    ) -> str:
        """Build an executable call to atom name.

        Args:
            name: Atom name without the .js suffix.
            args: Arguments, JSON-encoded into the call.
            frames: Frame path; each entry nests the call one frame deeper.
            async_callback: JS callback source appended for async atoms.

        Returns:
            Script source ready for Runtime.evaluate.
        """
        source = self.get_atom(name)
        if frames:
            script = source
            for frame in frames:
                script = self._wrap_for_frame(script, frame)
        else:
            logger.debug(f"Executing '{name}' atom in default context")
            script = f"({source})"

        parts = [_atoms_stringify(arg) for arg in (args or [])]
        if async_callback:
            parts += [async_callback, "true"]
        return f"{script}({','.join(parts)})"


__all__ = ["AtomCatalog", "DEFAULT_ATOMS_DIR"]
