"""
Android shared storage helpers (Termux / proot-distro).
"""
import os
from dataclasses import dataclass
from typing import Optional

import psutil

from .archives import human_size

SHARED_STORAGE_PATHS = [
    "/sdcard",
    "/storage/emulated/0",
    "/storage/self/primary",
    "/mnt/sdcard",
]

_SHARED_MARKERS = ("sdcard", "storage/emulated/0", "storage/self/primary")


def detect_shared_storage(candidates=None) -> Optional[str]:
    """First existing shared storage directory, or None"""
    for path in candidates or SHARED_STORAGE_PATHS:
        if os.path.isdir(path):
            return path
    return None


def format_storage_path(path) -> str:
    """Render a path inside shared storage as '📱 sdcard/<rest>'"""
    path = str(path)
    for marker in _SHARED_MARKERS:
        if marker + "/" in path:
            return "📱 sdcard/" + path.split(marker + "/", 1)[1]
        if path.endswith(marker):
            return "📱 sdcard"
    return path


@dataclass
class UsageReport:
    path: str
    total: int
    used: int
    free: int
    percent: float

    def describe(self):
        return (f"{human_size(self.used)} used of {human_size(self.total)} "
                f"({self.percent:.1f}%), {human_size(self.free)} free")


def disk_usage(path=".") -> UsageReport:
    usage = psutil.disk_usage(str(path))
    return UsageReport(str(path), usage.total, usage.used, usage.free, usage.percent)
