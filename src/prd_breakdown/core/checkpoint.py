"""Checkpoint persistence of a generated hierarchy."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from ..models.hierarchy import ParseResponse
from ..utils.logger import get_logger
from .exceptions import CheckpointError

logger = get_logger(__name__)

CHECKPOINT_FILE_NAME = "prd-breakdown-checkpoint.json"


def default_checkpoint_path() -> Path:
    return Path(tempfile.gettempdir()) / CHECKPOINT_FILE_NAME


def save_checkpoint(tree: ParseResponse, path: Union[str, Path, None] = None) -> Path:
    """
    Write a hierarchy as indented JSON.

    Args:
        tree: Hierarchy to save
        path: Destination; the temp-dir default when omitted

    Returns:
        Path written
    """
    target = Path(path) if path else default_checkpoint_path()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(tree.model_dump_json(indent=2), encoding="utf-8")
    except OSError as e:
        raise CheckpointError(f"failed to write checkpoint: {e}", path=str(target)) from e

    logger.info(f"Saved checkpoint to {target}")
    return target


def load_checkpoint(path: Union[str, Path]) -> ParseResponse:
    """
    Load a hierarchy saved by save_checkpoint (or produced elsewhere in the same schema).

    Raises:
        CheckpointError: if the file is missing, not JSON, or not a hierarchy
    """
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as e:
        raise CheckpointError(f"cannot read checkpoint: {e}", path=str(source)) from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CheckpointError(f"checkpoint is not valid JSON: {e}", path=str(source)) from e

    try:
        tree = ParseResponse.model_validate(data)
    except ValidationError as e:
        raise CheckpointError(f"checkpoint does not hold a hierarchy: {e}", path=str(source)) from e

    logger.info(f"Loaded checkpoint from {source} ({len(tree.epics)} epics)")
    return tree
