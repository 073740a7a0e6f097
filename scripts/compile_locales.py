#!/usr/bin/env python3
"""Compile locales/<lang>/LC_MESSAGES/*.po into .mo files using polib.

Usage: python scripts/compile_locales.py [dest_root]

Without dest_root the .mo files are written next to their .po sources.
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import polib


ROOT = Path(__file__).resolve().parents[1]


def compile_catalogs(src_root: Path = ROOT / "locales", dest_root: Optional[Path] = None) -> list[Path]:
    written: list[Path] = []
    for po_path in sorted(src_root.glob("*/LC_MESSAGES/*.po")):
        relative = po_path.relative_to(src_root).with_suffix(".mo")
        target = (dest_root or src_root) / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        polib.pofile(str(po_path)).save_as_mofile(str(target))
        written.append(target)
    return written


def main(argv: list[str]) -> int:
    dest = Path(argv[1]) if len(argv) > 1 else None
    for path in compile_catalogs(dest_root=dest):
        print(f"compiled {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))
