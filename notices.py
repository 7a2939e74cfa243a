from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from translations import DEFAULT_LOCALE, SUPPORTED_LOCALES, translate

SUCCESS = "success"
ERROR = "error"
WARNING = "warning"
INFO = "info"

# Matches the on-screen limit; older toasts are dropped first.
MAX_VISIBLE = 3


@dataclass(frozen=True)
class Toast:
    level: str
    key: str
    message: str


class Notifier:
    """Collects transient user notifications and fans them out to listeners."""

    def __init__(self, locale: str = DEFAULT_LOCALE):
        self.locale = locale if locale in SUPPORTED_LOCALES else DEFAULT_LOCALE
        self._toasts: List[Toast] = []
        self._listeners: List[Callable[[Toast], None]] = []
        self._lock = threading.Lock()

    @property
    def toasts(self) -> List[Toast]:
        with self._lock:
            return list(self._toasts)

    def subscribe(self, callback: Callable[[Toast], None]) -> None:
        self._listeners.append(callback)

    def set_locale(self, locale: str) -> None:
        if locale in SUPPORTED_LOCALES:
            self.locale = locale

    def t(self, key: str, **params: Any) -> str:
        return translate(key, self.locale, **params)

    def _push(self, toast: Toast) -> Toast:
        with self._lock:
            self._toasts.append(toast)
            del self._toasts[:-MAX_VISIBLE]
        for callback in list(self._listeners):
            callback(toast)
        return toast

    def notify(self, level: str, key: str, **params: Any) -> Toast:
        return self._push(Toast(level, key, self.t(key, **params)))

    def message(self, level: str, text: str, key: str = "") -> Toast:
        """Publish text that already comes localized, e.g. from the server."""
        return self._push(Toast(level, key, text))

    def success(self, key: str, **params: Any) -> Toast:
        return self.notify(SUCCESS, key, **params)

    def error(self, key: str, **params: Any) -> Toast:
        return self.notify(ERROR, key, **params)

    def warning(self, key: str, **params: Any) -> Toast:
        return self.notify(WARNING, key, **params)

    def info(self, key: str, **params: Any) -> Toast:
        return self.notify(INFO, key, **params)

    def dismiss_all(self) -> None:
        with self._lock:
            self._toasts.clear()

    def last(self) -> Optional[Toast]:
        with self._lock:
            return self._toasts[-1] if self._toasts else None
