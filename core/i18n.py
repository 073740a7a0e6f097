from __future__ import annotations

import gettext
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

import structlog

from core.config import settings

_current_locale: ContextVar[str] = ContextVar("current_locale", default=settings.DEFAULT_LOCALE)
_translators: dict[str, gettext.NullTranslations] = {}
_localedir: Optional[Path] = Path(settings.LOCALES_DIR) if settings.LOCALES_DIR else None
_logger = structlog.get_logger(__name__)


def set_locale(locale: str) -> None:
    """Set current request locale (fallback to the configured default)."""
    _current_locale.set(locale or settings.DEFAULT_LOCALE)


def get_locale() -> str:
    return _current_locale.get()


def get_localedir() -> Path:
    return _localedir or Path(__file__).resolve().parent.parent / "locales"


def set_localedir(path: Optional[Path]) -> None:
    """Point gettext at another catalog root and drop cached translators."""
    global _localedir
    _localedir = Path(path) if path is not None else None
    _translators.clear()


def _get_translator(locale: str) -> gettext.NullTranslations:
    tr = _translators.get(locale)
    if tr is not None:
        return tr
    tr = gettext.translation(
        domain="messages",
        localedir=str(get_localedir()),
        languages=[locale],
        fallback=True,
    )
    _translators[locale] = tr
    return tr


def t(msgid: str, **params) -> str:
    """Translate msgid using current locale and format with params.

    If the catalog is missing or the key is not found, returns msgid itself.
    """
    text = _get_translator(get_locale()).gettext(msgid)
    if not params:
        return text
    try:
        return text.format(**params)
    except (KeyError, IndexError, ValueError) as exc:
        _logger.warning("i18n_format_failed", msgid=msgid, params=list(params.keys()), error=str(exc))
        return text
