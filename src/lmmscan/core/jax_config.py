"""JAX setup for the permutation and kinship kernels.

Permutation LODs are differences of nearby log-RSS values, so the kernels
must run in 64-bit. JAX fixes the default dtype when the first array is
created, which is why the entry points call ensure_jax_configured() before
touching any JAX array.
"""

from __future__ import annotations

from typing import Any

import jax
from loguru import logger

_configured = False


def configure_jax(enable_x64: bool = True, platform: str | None = None) -> None:
    """Set JAX precision and, optionally, the backend.

    Args:
        enable_x64: Use float64 arrays by default.
        platform: Force a backend ("cpu", "gpu", "tpu"); None lets JAX pick.

    Example:
        >>> configure_jax(platform="cpu")
    """
    global _configured

    if enable_x64:
        jax.config.update("jax_enable_x64", True)
    if platform is not None:
        jax.config.update("jax_platform_name", platform)

    _configured = True
    info = get_jax_info()
    logger.debug(
        f"JAX {info['version']} on {info['backend']} "
        f"({len(info['devices'])} device(s)), x64={info['x64_enabled']}"
    )


def ensure_jax_configured() -> None:
    """Apply the default configuration once, unless x64 is already on."""
    if not _configured or not jax.config.jax_enable_x64:
        configure_jax()


def get_jax_info() -> dict[str, Any]:
    """Version, default backend, devices and x64 flag of the running JAX."""
    return {
        "version": jax.__version__,
        "backend": jax.default_backend(),
        "devices": [str(d) for d in jax.devices()],
        "x64_enabled": bool(jax.config.jax_enable_x64),
    }
