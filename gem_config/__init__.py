"""
gem_config -- single public entrypoint for kernel runtime settings.

Responsibility:
    ``get_active_config()`` is the only way to obtain settings at runtime.
    Settings come from a YAML file (``defaults.yaml`` beside this module
    unless a path is given) with a small set of environment overrides.

Architecture position:
    Configuration.  Sits beside ``gem_kernel``; the kernel never imports
    from it.  ``gem_kernel.services.kernel_container.start_kernel`` takes the
    returned settings.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from gem_config.loader import (
    apply_env_overrides,
    flatten_settings,
    load_yaml_file,
    parse_settings,
)
from gem_config.schema import KernelSettings

_logger = logging.getLogger("gem_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> KernelSettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML settings file.  Defaults to gem_config/defaults.yaml.
        environ: Environment mapping for overrides.  Defaults to os.environ.

    Returns:
        Frozen ``KernelSettings``.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    fields = flatten_settings(load_yaml_file(path))
    settings = parse_settings(apply_env_overrides(fields, env))

    _logger.info(
        "config_loaded",
        extra={
            "config_path": str(path),
            "checksum": settings.checksum,
            "log_level": settings.log_level,
        },
    )
    return settings


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "KernelSettings",
    "get_active_config",
]
