"""Best-effort host metadata attached to each registration."""

import shutil
import socket
import subprocess
import sys
from typing import Callable, Optional

import psutil


_DECIMAL_UNITS = ["B", "kB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]


def human_size(size: float) -> str:
    """Format a byte count with decimal SI units and four significant digits.

    ``human_size(17179869184) == "17.18GB"``
    """
    size = float(size)
    i = 0
    while size >= 1000 and i < len(_DECIMAL_UNITS) - 1:
        size /= 1000
        i += 1
    return f"{size:.4g}{_DECIMAL_UNITS[i]}"


def get_hostname() -> str:
    return socket.gethostname()


def get_gpu_devices() -> list[str]:
    """Return the names of visible NVIDIA GPUs, or an empty list if no driver tool is installed."""
    smi = shutil.which("nvidia-smi")
    if smi is None:
        return []
    result = subprocess.run(
        [smi, "--query-gpu=name", "--format=csv,noheader"],
        capture_output=True, text=True, timeout=10,
    )
    if result.returncode != 0:
        raise RuntimeError(f"nvidia-smi exited {result.returncode}: {result.stderr.strip()}")
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def get_total_memory() -> int:
    return psutil.virtual_memory().total


# key -> probe returning the string value
DEFAULT_PROBES: dict[str, Callable[[], str]] = {
    "hostname": get_hostname,
    "gpus": lambda: ",".join(get_gpu_devices()),
    "mem": lambda: human_size(get_total_memory()),
}


def collect_metadata(probes: Optional[dict[str, Callable[[], str]]] = None) -> dict[str, str]:
    """Run each probe and return whatever succeeded.

    A failing probe is reported on stderr and its key is left out; it never
    fails the caller.
    """
    if probes is None:
        probes = DEFAULT_PROBES
    meta: dict[str, str] = {}
    for key, probe in probes.items():
        try:
            meta[key] = probe()
        except Exception as exc:
            print(f"[metadata] warning: could not read {key}: {exc}", file=sys.stderr)
    return meta
