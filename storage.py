"""Filesystem collaborators: the bundled sample and the output location."""

import logging
import os
import shutil

from constants import ASSET_DIR, SAMPLE_ASSET, INPUT_FILE_NAME, OUTPUT_FILE_NAME
from exceptions import AssetError, StoragePermissionError

log = logging.getLogger("Recrop")


def bundled_asset_path(name: str = SAMPLE_ASSET) -> str:
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), ASSET_DIR, name)


def can_write(directory: str) -> bool:
    """Return True when ``directory`` exists (or can be created) and is writable."""
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as e:
        log.warning("Cannot create %s: %s", directory, e)
        return False
    return os.access(directory, os.W_OK)


def require_writable(directory: str) -> None:
    if not can_write(directory):
        raise StoragePermissionError(f"No write access to {directory}")


def input_path(directory: str) -> str:
    return os.path.join(directory, INPUT_FILE_NAME)


def output_path(directory: str) -> str:
    return os.path.join(directory, OUTPUT_FILE_NAME)


def ensure_input_file(asset: str, target: str) -> str:
    """Copy the bundled sample to ``target`` unless it is already there."""
    if os.path.exists(target):
        return target
    log.info("Copying sample %s to %s", asset, target)
    try:
        with open(asset, "rb") as src, open(target, "wb") as dst:
            shutil.copyfileobj(src, dst)
    except OSError as e:
        try:
            os.remove(target)
        except OSError:
            pass
        raise AssetError(f"Failed to copy sample video: {e}") from e
    return target
