from __future__ import annotations

from PySide6.QtCore import QPoint, QPointF, QRectF, Qt, QTimer, Signal
from PySide6.QtGui import QColor, QFont, QFontMetrics, QGuiApplication, QPainter, QPainterPath, QPen
from PySide6.QtWidgets import QWidget

from .models import TimerState
from .overlay import (
    PANEL_WIDTH, ROW_HEIGHT, ROW_PADDING, STOP_BUTTON_INSET, STOP_BUTTON_SIZE,
    OverlayChannel, hit_test, is_over_stop_button, panel_height, row_at_point,
)
from .timeutil import seconds_to_hms

SCREEN_MARGIN = 20


class FloatingTimerPanel(QWidget):
    """
    Frameless always-on-top panel listing the running timers:
      • One row per session: project, task, elapsed time and a stop button.
      • Clicking the stop button queues a stop request on the channel.
      • Clicking anywhere else on a row asks the main window to come forward.
    """
    open_requested = Signal(int)

    def __init__(self, channel: OverlayChannel, parent=None, *, refresh_ms: int = 500):
        super().__init__(parent, Qt.Tool | Qt.FramelessWindowHint | Qt.WindowStaysOnTopHint)
        self.setAttribute(Qt.WA_TranslucentBackground)
        self.setAttribute(Qt.WA_ShowWithoutActivating)
        self.setMouseTracking(True)
        self._channel = channel
        self._state = TimerState()
        self._hovered_row: int | None = None

        self.setFixedWidth(int(PANEL_WIDTH))
        self._resize_for(0)

        self._refresh = QTimer(self)
        self._refresh.setInterval(refresh_ms)
        self._refresh.timeout.connect(self.sync)
        self._refresh.start()

    # ---- Public API ----
    def show_state(self, state: TimerState):
        if state == self._state:
            return
        count_changed = len(state.entries) != len(self._state.entries)
        self._state = state
        if count_changed:
            self._resize_for(len(state.entries))
        self.update()

    def sync(self):
        self.show_state(self._channel.latest())

    def hovered_row(self) -> int | None:
        return self._hovered_row

    # ---- Geometry ----
    def _resize_for(self, entry_count: int):
        self.setFixedHeight(int(panel_height(entry_count)))
        screen = QGuiApplication.primaryScreen()
        if screen is None:
            return
        # anchored top-right
        area = screen.availableGeometry()
        self.move(QPoint(area.right() - self.width() - SCREEN_MARGIN, area.top() + SCREEN_MARGIN))

    # ---- Events ----
    def mousePressEvent(self, e):
        pos = e.position()
        hit = hit_test(self.width(), pos.x(), pos.y(), self._state)
        if hit is None:
            super().mousePressEvent(e)
            return
        action, task_id = hit
        if action == "stop":
            self._channel.request_stop(task_id)
        else:
            self.open_requested.emit(task_id)

    def mouseMoveEvent(self, e):
        pos = e.position()
        hovered = None
        if is_over_stop_button(self.width(), pos.x()):
            hovered = row_at_point(pos.y(), len(self._state.entries))
        if hovered != self._hovered_row:
            self._hovered_row = hovered
            self.update()
        super().mouseMoveEvent(e)

    def leaveEvent(self, e):
        if self._hovered_row is not None:
            self._hovered_row = None
            self.update()
        super().leaveEvent(e)

    def paintEvent(self, _e):
        p = QPainter(self)
        p.setRenderHint(QPainter.Antialiasing)

        bg = QPainterPath()
        bg.addRoundedRect(QRectF(self.rect()), 10, 10)
        p.fillPath(bg, QColor(30, 30, 30, 230))

        if self._state.is_empty:
            p.setPen(QColor(160, 160, 160))
            p.setFont(QFont(self.font().family(), 12))
            p.drawText(QRectF(self.rect()), Qt.AlignCenter, "No timer running")
            p.end()
            return

        name_font = QFont(self.font().family(), 11)
        time_font = QFont(self.font().family(), 13, QFont.DemiBold)
        width = self.width()
        for i, entry in enumerate(self._state.entries):
            top = ROW_PADDING + i * ROW_HEIGHT
            self._draw_row(p, i, entry, top, width, name_font, time_font)
        p.end()

    def _draw_row(self, p: QPainter, i: int, entry, top: float, width: float,
                  name_font: QFont, time_font: QFont):
        elapsed = seconds_to_hms(entry.elapsed_seconds)
        time_width = QFontMetrics(time_font).horizontalAdvance(elapsed)
        stop_left = width - STOP_BUTTON_INSET
        mid = top + ROW_HEIGHT / 2

        p.setFont(name_font)
        p.setPen(QColor(150, 150, 150))
        label = f"{entry.project_name} · {entry.task_name}"
        text_width = stop_left - time_width - 20
        p.drawText(QRectF(10, top, text_width, ROW_HEIGHT), Qt.AlignVCenter | Qt.AlignLeft,
                   QFontMetrics(name_font).elidedText(label, Qt.ElideRight, int(text_width)))

        p.setFont(time_font)
        p.setPen(QColor(240, 240, 240))
        p.drawText(QRectF(stop_left - time_width - 8, top, time_width, ROW_HEIGHT),
                   Qt.AlignVCenter | Qt.AlignRight, elapsed)

        # stop button
        color = QColor(255, 95, 87) if self._hovered_row == i else QColor(200, 70, 60)
        p.setPen(Qt.NoPen)
        p.setBrush(color)
        p.drawRoundedRect(QRectF(stop_left, mid - STOP_BUTTON_SIZE / 2, STOP_BUTTON_SIZE, STOP_BUTTON_SIZE), 2, 2)

        if i < len(self._state.entries) - 1:
            p.setPen(QPen(QColor(80, 80, 80), 0.5))
            line_y = top + ROW_HEIGHT
            p.drawLine(QPointF(10, line_y), QPointF(width - 10, line_y))
