from __future__ import annotations

import fnmatch
import time
import zipfile
from pathlib import Path
from typing import Iterable, Optional


# What GmailDriver writes under debug_dir: failure captures (png/html/txt) and --step-debug shots.
CAPTURE_PATTERNS = (
    "search_timeout.*",
    "item_*_error.*",
    "step_*.png",
)


def _is_capture(name: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(name, pat) for pat in patterns)


def create_debug_bundle(
    *,
    debug_dir: str,
    log_file: str,
    out_dir: str = "data",
    label: str = "",
    extra_paths: Optional[Iterable[str]] = None,
    patterns: Iterable[str] = CAPTURE_PATTERNS,
) -> Path:
    """
    Zip the log plus the aggregator's failure captures so a failed run can be inspected offline.

    Only files matching `patterns` are taken from `debug_dir`; the storage_state (Gmail session
    cookies) is never included, even when passed in `extra_paths`.
    """
    out_root = Path(out_dir)
    out_root.mkdir(parents=True, exist_ok=True)

    stamp = time.strftime("%Y%m%d_%H%M%S")
    lbl = (label or "").strip().lower()
    lbl_part = f"_{lbl}" if lbl else ""
    out_path = out_root / f"debug_bundle{lbl_part}_{stamp}.zip"

    dbg = Path(debug_dir)
    log = Path(log_file)
    patterns = tuple(patterns)

    def _add_file(z: zipfile.ZipFile, file_path: Path, arcname: str) -> None:
        if "storage_state" in file_path.name:
            return
        try:
            if file_path.exists() and file_path.is_file():
                z.write(file_path, arcname=arcname)
        except OSError:
            # a capture may disappear while we zip
            return

    with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as z:
        _add_file(z, log, arcname=log.name)

        if dbg.exists() and dbg.is_dir():
            for p in sorted(dbg.rglob("*")):
                if not p.is_file() or not _is_capture(p.name, patterns):
                    continue
                rel = p.relative_to(dbg)
                _add_file(z, p, arcname=str(Path("debug") / rel))

        for raw in extra_paths or ():
            p = Path(raw)
            if p.is_file():
                _add_file(z, p, arcname=str(Path("extra") / p.name))
            elif p.is_dir():
                for f in sorted(p.rglob("*")):
                    if f.is_file():
                        _add_file(z, f, arcname=str(Path("extra") / p.name / f.relative_to(p)))

    return out_path
