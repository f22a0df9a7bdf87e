"""Project configuration, precedence resolution and atomic writes.

* **Project config** -- ``specdispatch.json`` in the working directory (or
  a path given with ``--config``), deserialised into a
  :class:`~specdispatch.models.GeneratorConfig`.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, the project config and defaults.
* **Data directory** -- XDG compliant on Linux/BSD, ``~/.specdispatch/``
  elsewhere; holds crash logs.

Every generated file is written with :func:`atomic_write` (temp file, then
rename) so an interrupted run never leaves a half-written output behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from specdispatch.exceptions import ConfigError
from specdispatch.models import GeneratorConfig

_APP_NAME = "specdispatch"
PROJECT_CONFIG_FILENAME = "specdispatch.json"
DEFAULT_OUT_DIR = ".specdispatch"

ENV_SPEC = "SPECDISPATCH_SPEC"
ENV_OUT_DIR = "SPECDISPATCH_OUT_DIR"
ENV_CONFIG = "SPECDISPATCH_CONFIG"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/specdispatch/`` (default
    ``~/.local/share/specdispatch/``). Elsewhere: ``~/.specdispatch/logs/``.
    """
    if _is_xdg_platform():
        env_value = os.environ.get("XDG_DATA_HOME", "")
        base = Path(env_value) if env_value else Path.home() / ".local" / "share"
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}" / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* atomically using a temp file and rename.

    The temporary file is created next to *path* so that ``os.replace`` is
    an atomic rename on POSIX systems. On any failure the temp file is
    removed and the exception propagates.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Project config ---


def load_project_config(path: Optional[Path] = None) -> Optional[GeneratorConfig]:
    """Load the project configuration.

    Args:
        path: Explicit config file. When given, the file must exist.
            Defaults to ``./specdispatch.json``, which may be absent.

    Returns:
        The parsed config, or ``None`` if the default file does not exist.
        A relative ``spec`` is resolved against the config file's directory.

    Raises:
        ConfigError: If the file is missing (explicit path only), is not
            valid JSON, or fails validation.
    """
    explicit = path is not None
    if path is None:
        path = Path.cwd() / PROJECT_CONFIG_FILENAME
    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    try:
        config = GeneratorConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc

    if config.spec is not None and not _is_remote(config.spec) and config.spec != "-":
        spec_path = Path(config.spec)
        if not spec_path.is_absolute():
            config.spec = str(path.parent / spec_path)
    return config


def _is_remote(source: str) -> bool:
    return source.startswith(("http://", "https://"))


# --- Precedence resolution ---


def resolve_config(
    cli_spec: Optional[str] = None,
    cli_out_dir: Optional[str] = None,
    cli_config: Optional[Path] = None,
) -> GeneratorConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_spec``, ``cli_out_dir``, ``cli_config``)
        2. Environment variables (``SPECDISPATCH_SPEC``,
           ``SPECDISPATCH_OUT_DIR``, ``SPECDISPATCH_CONFIG``)
        3. Project config (``./specdispatch.json`` or the chosen file)
        4. Defaults

    Returns:
        The merged :class:`~specdispatch.models.GeneratorConfig`. Its
        ``spec`` may still be ``None``; callers decide whether that is an
        error.
    """
    config_path = cli_config
    if config_path is None and os.environ.get(ENV_CONFIG):
        config_path = Path(os.environ[ENV_CONFIG])

    config = load_project_config(config_path) or GeneratorConfig()

    env_spec = os.environ.get(ENV_SPEC)
    if cli_spec is not None:
        config.spec = cli_spec
    elif env_spec:
        config.spec = env_spec

    env_out_dir = os.environ.get(ENV_OUT_DIR)
    if cli_out_dir is not None:
        config.out_dir = cli_out_dir
    elif env_out_dir:
        config.out_dir = env_out_dir

    return config
