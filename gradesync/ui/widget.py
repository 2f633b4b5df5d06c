from __future__ import annotations

import asyncio
import logging
import time

import flet as ft

from gradesync.config.settings import settings
from gradesync.domain.logic.grading import GradeColor
from gradesync.services.refresh_signal import RefreshWatcher
from gradesync.services.widget_sync import SharedSnapshotStore
from gradesync.ui.widget_content import widget_content

logger = logging.getLogger(__name__)

COLORS = {
    GradeColor.GREEN: ft.Colors.GREEN,
    GradeColor.BLUE: ft.Colors.BLUE,
    GradeColor.CYAN: ft.Colors.CYAN,
    GradeColor.ORANGE: ft.Colors.ORANGE,
    GradeColor.RED: ft.Colors.RED,
    GradeColor.PINK: ft.Colors.PINK,
    GradeColor.GRAY: ft.Colors.GREY,
}


class GradeWidget:
    """Read-only renderer for the published snapshot.

    Re-reads on a fixed timeline and whenever the main app bumps the refresh token.
    """

    def __init__(self, page: ft.Page, shared: SharedSnapshotStore) -> None:
        self.page = page
        self.shared = shared
        self.watcher = RefreshWatcher(shared.group_dir)
        self.refresh_seconds = max(60, settings.widget_refresh_minutes * 60)
        self.poll_seconds = max(1, settings.widget_poll_seconds)

        self.page.title = "Notenschnitt"
        self.page.window.width = 320
        self.page.window.height = 320

        self.semester = ft.Text(size=12, color=ft.Colors.WHITE70)
        self.headline = ft.Text(size=48, weight=ft.FontWeight.BOLD, color=ft.Colors.WHITE)
        self.performance = ft.Text(size=14, color=ft.Colors.WHITE)
        self.year = ft.Text(size=12, color=ft.Colors.WHITE70)
        self.counts = ft.Text(size=12, color=ft.Colors.WHITE70)
        self.updated = ft.Text(size=10, color=ft.Colors.WHITE54)
        self.card = ft.Container(
            content=ft.Column(
                [
                    ft.Row([ft.Icon(ft.Icons.SCHOOL, color=ft.Colors.WHITE), self.semester],
                           alignment=ft.MainAxisAlignment.SPACE_BETWEEN),
                    self.headline,
                    self.performance,
                    self.year,
                    self.counts,
                    self.updated,
                ],
                tight=True,
            ),
            padding=16,
            border_radius=20,
        )

    def render(self) -> None:
        snapshot = self.shared.read()
        content = widget_content(snapshot, round_points=self.shared.round_point_averages())
        self.semester.value = content.semester_label
        self.headline.value = content.headline
        self.performance.value = content.performance
        self.year.value = content.year_label
        self.counts.value = content.counts_label
        self.updated.value = content.updated_label
        self.card.bgcolor = COLORS[content.color]
        self.page.update()

    async def timeline(self) -> None:
        next_refresh = time.monotonic() + self.refresh_seconds
        while True:
            await asyncio.sleep(self.poll_seconds)
            if self.watcher.changed() or time.monotonic() >= next_refresh:
                logger.debug("Widget timeline refresh")
                self.render()
                next_refresh = time.monotonic() + self.refresh_seconds

    def run(self) -> None:
        self.page.add(self.card)
        self.render()
        self.page.run_task(self.timeline)


def main(page: ft.Page) -> None:
    GradeWidget(page, SharedSnapshotStore(settings.shared_group_dir, read_only=True)).run()
