from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

TOKEN_FILENAME = "timeline_reload.token"


class RefreshSignal:
    """Fire-and-forget "re-render" signal for the widget process.

    Every call replaces a token file in the shared container. Readers poll it,
    so several calls between two polls collapse into one refresh.
    """

    def __init__(self, directory: str | Path) -> None:
        self.path = Path(directory) / TOKEN_FILENAME

    def reload_all_timelines(self) -> None:
        token = str(time.time_ns())
        tmp = self.path.with_suffix(".tmp")
        try:
            tmp.write_text(token, encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            logger.warning("Could not signal widget refresh: %s", exc)


class RefreshWatcher:
    def __init__(self, directory: str | Path) -> None:
        self.path = Path(directory) / TOKEN_FILENAME
        self._seen = self.current_token()

    def current_token(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8").strip() or None
        except OSError:
            return None

    def changed(self) -> bool:
        token = self.current_token()
        if token == self._seen:
            return False
        self._seen = token
        return True
