from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from flash_core.logging import get_logger

if TYPE_CHECKING:
    from flash_core import FlashSettings

logger = get_logger(__name__)

DEFAULT_CALLBACKS_DIR = "callbacks"


def _module_name(path: Path) -> str:
    return f"flare_callbacks.{path.parent.name}.{path.stem}"


def load_callbacks(
    directory: str | Path | None = None,
    settings: FlashSettings | None = None,
) -> list[str]:
    """
    Import every module of a callbacks directory.

    Callback modules register hooks at import time::

        # callbacks/user.py
        from flash_flare.hooks import before_create

        @before_create("user")
        def lower_email(args, client):
            args["data"]["email"] = args["data"]["email"].lower()

    Args:
        directory: Directory to scan. Defaults to ``FLARE_CALLBACKS_DIR`` and
            then ``./callbacks``.
        settings: Settings to read ``FLARE_CALLBACKS_DIR`` from.

    Returns:
        Names of the modules imported by this call. Modules imported by an
        earlier call are skipped so their hooks are not registered twice.
    """
    if directory is None:
        if settings is None:
            from flash_core import flash_settings as settings
        directory = settings.FLARE_CALLBACKS_DIR or DEFAULT_CALLBACKS_DIR

    path = Path(directory).resolve()
    if not path.is_dir():
        logger.warning("Callbacks directory not found: %s", path)
        return []

    loaded: list[str] = []
    for file in sorted(path.glob("*.py")):
        if file.name.startswith("_"):
            continue

        name = _module_name(file)
        if name in sys.modules:
            continue

        spec = importlib.util.spec_from_file_location(name, file)
        if spec is None or spec.loader is None:
            logger.warning("Cannot import callbacks module %s", file)
            continue

        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            del sys.modules[name]
            raise
        loaded.append(name)
        logger.debug("Loaded callbacks module %s", name)

    logger.info("Loaded %d callbacks module(s) from %s", len(loaded), path)
    return loaded
