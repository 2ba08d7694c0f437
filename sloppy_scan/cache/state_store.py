"""JSON persistence for pydantic state models."""

import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import StateReadError, StateWriteError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def read_state(path: Path, model_cls: Type[M]) -> Optional[M]:
    """Load a state file.

    Returns:
        The parsed model, or None if the file does not exist

    Raises:
        StateReadError: If the file exists but is unreadable or malformed
    """
    if not path.exists():
        return None
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise StateReadError(f"Cannot read {path}: {e}") from e
    try:
        return model_cls.model_validate_json(raw)
    except ValidationError as e:
        raise StateReadError(f"Malformed state in {path}: {e.error_count()} errors") from e


def write_state(path: Path, state: BaseModel) -> None:
    """Write a state file atomically (temp file + rename).

    Raises:
        StateWriteError: If the directory or file cannot be written
    """
    tmp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp_file:
            tmp_path = tmp_file.name
            tmp_file.write(state.model_dump_json(by_alias=True, indent=2))
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
        raise StateWriteError(f"Cannot write {path}: {e}") from e
    logger.debug(f"Wrote state file {path}")
