"""Home, model and output directory utilities.

Defaults live under ``~/.facenorm``; crops go to the system temp
directory. Override with ``FACENORM_HOME``, ``FACENORM_MODELS_DIR`` or
``FACENORM_OUTPUT_DIR``.
"""

import os
import tempfile
from pathlib import Path


def get_home_dir() -> Path:
    """Return the facenorm home directory, creating it if needed.

    Resolution order:
        1. ``FACENORM_HOME`` environment variable.
        2. ``~/.facenorm`` (default).
    """
    home = os.environ.get("FACENORM_HOME")
    if home:
        home_dir = Path(home)
    else:
        home_dir = Path.home() / ".facenorm"
    home_dir.mkdir(parents=True, exist_ok=True)
    return home_dir


def get_models_dir() -> Path:
    """Return the models directory, creating it if it doesn't exist.

    Resolution order:
        1. ``FACENORM_MODELS_DIR`` (absolute or relative to CWD).
        2. ``{home}/models``.
    """
    env_val = os.environ.get("FACENORM_MODELS_DIR")
    if env_val:
        models_dir = Path(env_val)
        if not models_dir.is_absolute():
            models_dir = Path.cwd() / models_dir
    else:
        models_dir = get_home_dir() / "models"
    models_dir.mkdir(parents=True, exist_ok=True)
    return models_dir


def get_output_dir() -> Path:
    """Return the directory crops are written to.

    Resolution order:
        1. ``FACENORM_OUTPUT_DIR``.
        2. ``{tempdir}/facenorm``. Files there are never cleaned up by the
           pipeline; the OS temp policy (or the caller) owns deletion.
    """
    env_val = os.environ.get("FACENORM_OUTPUT_DIR")
    if env_val:
        out_dir = Path(env_val)
    else:
        out_dir = Path(tempfile.gettempdir()) / "facenorm"
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir


__all__ = ["get_home_dir", "get_models_dir", "get_output_dir"]
