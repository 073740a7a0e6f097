#!/usr/bin/env python3
"""Validate .po files syntax and key coverage using polib.

Exit non-zero if any .po cannot be parsed, or if a message key used in code
is missing or untranslated in any language.
"""
from __future__ import annotations

import re
import sys
from pathlib import Path

import polib


# t("key", ...) calls, message_key="key" arguments and *_WARNING / *_KEY constants
KEY_PATTERNS = (
    re.compile(r"\bt\(\s*['\"]([a-z0-9_]+\.[a-z0-9_.]+)['\"]"),
    re.compile(r"message_key\s*=\s*['\"]([a-z0-9_]+\.[a-z0-9_.]+)['\"]"),
    re.compile(r"^[A-Z_]+(?:WARNING|KEY)\s*=\s*['\"]([a-z0-9_]+\.[a-z0-9_.]+)['\"]", re.M),
    re.compile(r"^\s+['\"]([a-z0-9_]+\.[a-z0-9_.]+)['\"],\s*$", re.M),
)
EXCLUDE_DIRS = {".git", "venv", ".venv", "locales", "tests", "scripts"}


def used_keys(src_root: Path) -> set[str]:
    keys: set[str] = set()
    for p in src_root.rglob("*.py"):
        if any(part in EXCLUDE_DIRS for part in p.relative_to(src_root).parts):
            continue
        text = p.read_text(encoding="utf-8", errors="ignore")
        for pattern in KEY_PATTERNS:
            keys.update(m.group(1) for m in pattern.finditer(text))
    return keys


def main() -> int:
    root = Path(__file__).resolve().parents[1]
    po_files = sorted((root / "locales").glob("*/LC_MESSAGES/*.po"))
    if not po_files:
        return 0

    errors: list[str] = []
    catalogs = {}
    for f in po_files:
        try:
            catalogs[f] = polib.pofile(str(f))
        except (OSError, ValueError) as exc:
            errors.append(f"{f}: {exc}")
    if errors:
        print("PO syntax errors detected:\n" + "\n".join(errors), file=sys.stderr)
        return 1

    keys = used_keys(root)
    problems = 0
    for f, po in catalogs.items():
        keys_in_po = {e.msgid for e in po}
        missing = sorted(keys - keys_in_po)
        untranslated = sorted(e.msgid for e in po if not (e.msgstr or "").strip())
        if missing:
            print(f"[i18n] Missing keys in {f}: {', '.join(missing)}", file=sys.stderr)
        if untranslated:
            print(f"[i18n] Untranslated keys in {f}: {', '.join(untranslated)}", file=sys.stderr)
        problems += len(missing) + len(untranslated)
        extras = sorted(keys_in_po - keys)
        if extras:
            print(f"[i18n] Extra keys in {f}: {len(extras)} (info)")
    return 1 if problems else 0


if __name__ == "__main__":
    raise SystemExit(main())
