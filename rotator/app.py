from __future__ import annotations
import logging
import os
from datetime import tzinfo

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt, QTimer, Signal
from PySide6.QtGui import QAction, QKeySequence, QShortcut
from PySide6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QTabWidget, QVBoxLayout, QHBoxLayout,
    QLabel, QLineEdit, QPushButton, QTableView, QMessageBox, QHeaderView,
    QListWidget, QListWidgetItem, QComboBox, QToolBar, QStyleFactory, QStyle,
    QSystemTrayIcon, QMenu, QTreeWidget, QTreeWidgetItem, QCheckBox, QSplitter,
)
from PySide6.QtNetwork import QLocalServer, QLocalSocket

from .config import RotatorSettings, configure_logging, get_settings
from .engine import RotatorEngine
from .floating_panel import FloatingTimerPanel
from .models import Project, TimeEntry
from .timeutil import (
    fmt_local_date, fmt_local_long, format_duration, local_day_bounds,
    resolve_tz, seconds_to_hms,
)

logger = logging.getLogger(__name__)

APP_TITLE = "Project Rotator"

# (label, days back); None means the whole ledger
STATS_RANGES = (
    ("Today", 0),
    ("Last 7 days", 6),
    ("Last 30 days", 29),
    ("All time", None),
)


# ---------- Table models ----------

class EntriesTableModel(QAbstractTableModel):
    headers = ["ID", "Project", "Task", "Start", "End", "Duration", "Date"]

    def __init__(self, rows: list[TimeEntry] | None = None, tz: tzinfo | None = None):
        super().__init__()
        self._rows: list[TimeEntry] = rows or []
        self._project_names: dict[int, str] = {}
        self._task_names: dict[int, str] = {}
        self._tz = tz

    def set_rows(self, rows: list[TimeEntry], project_names: dict[int, str], task_names: dict[int, str]):
        self.beginResetModel()
        self._rows = rows
        self._project_names = project_names
        self._task_names = task_names
        self.endResetModel()

    # Qt model API
    def rowCount(self, parent=QModelIndex()):
        return len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return len(self.headers)

    def data(self, index: QModelIndex, role=Qt.DisplayRole):
        if not index.isValid():
            return None
        row = self._rows[index.row()]
        col = index.column()
        if role in (Qt.DisplayRole, Qt.EditRole):
            if col == 0:
                return row.id
            elif col == 1:
                return self._project_names.get(row.project_id, "Unknown")
            elif col == 2:
                return self._task_names.get(row.task_id, "Unknown")
            elif col == 3:
                return fmt_local_long(row.start_time, self._tz)
            elif col == 4:
                return fmt_local_long(row.end_time, self._tz)
            elif col == 5:
                return seconds_to_hms(row.duration_seconds)
            elif col == 6:
                return fmt_local_date(row.start_time, self._tz)
        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if role != Qt.DisplayRole:
            return None
        if orientation == Qt.Horizontal:
            return self.headers[section]
        return section + 1

    def row(self, r: int) -> TimeEntry:
        return self._rows[r]


class TotalsTableModel(QAbstractTableModel):
    """(label, seconds) rows: per-project totals, daily and hourly activity."""

    def __init__(self, label_header: str, rows=None):
        super().__init__()
        self.headers = [label_header, "Total"]
        self._rows: list[tuple[str, int]] = rows or []

    def set_rows(self, rows):
        self.beginResetModel()
        self._rows = list(rows or [])
        self.endResetModel()

    def rowCount(self, parent=QModelIndex()):
        return len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return 2

    def data(self, index: QModelIndex, role=Qt.DisplayRole):
        if not index.isValid() or role not in (Qt.DisplayRole, Qt.EditRole):
            return None
        label, total = self._rows[index.row()]
        if index.column() == 0:
            return label
        if index.column() == 1:
            return seconds_to_hms(int(total))
        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if role != Qt.DisplayRole:
            return None
        if orientation == Qt.Horizontal:
            return self.headers[section]
        return section + 1

    def sort(self, column, order):
        rev = (order == Qt.DescendingOrder)

        def key(r):
            return r[0].lower() if column == 0 else int(r[1])

        self.layoutAboutToBeChanged.emit()
        self._rows.sort(key=key, reverse=rev)
        self.layoutChanged.emit()

    def total(self) -> int:
        return sum(int(r[1]) for r in self._rows)


def _table(model) -> QTableView:
    t = QTableView()
    t.setModel(model)
    t.setSelectionBehavior(QTableView.SelectRows)
    t.setSelectionMode(QTableView.SingleSelection)
    t.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
    t.setAlternatingRowColors(True)
    return t


# ---------- Tabs ----------

class RotatorTab(QWidget):
    data_changed = Signal()
    title_changed = Signal(str)

    def __init__(self, engine: RotatorEngine, settings: RotatorSettings):
        super().__init__()
        self.engine = engine

        main = QVBoxLayout(self)

        # Active info
        info = QHBoxLayout()
        self.active_label = QLabel("No active task")
        self.elapsed_label = QLabel("00:00:00")
        self.elapsed_label.setStyleSheet("font: 24px; font-weight: 700;")
        info.addWidget(self.active_label)
        info.addStretch()
        info.addWidget(QLabel("Elapsed:"))
        info.addWidget(self.elapsed_label)
        main.addLayout(info)

        # Rotation controls
        row = QHBoxLayout()
        self.btn_rotate_project = QPushButton("Next project")
        self.btn_rotate_task = QPushButton("Next task")
        self.multi_check = QCheckBox("Allow multiple timers")
        self.multi_check.setChecked(settings.allow_multiple)
        self.btn_start = QPushButton("Start")
        self.btn_stop = QPushButton("Stop all")
        row.addWidget(self.btn_rotate_project)
        row.addWidget(self.btn_rotate_task)
        row.addStretch()
        row.addWidget(self.multi_check)
        row.addWidget(self.btn_start)
        row.addWidget(self.btn_stop)
        main.addLayout(row)

        # Projects | tasks
        split = QSplitter()
        left = QWidget()
        left_lay = QVBoxLayout(left)
        left_lay.setContentsMargins(0, 0, 0, 0)
        self.project_list = QListWidget()
        self.project_edit = QLineEdit()
        self.project_edit.setPlaceholderText("New project…")
        btn_archive_project = QPushButton("Archive project")
        left_lay.addWidget(self.project_list, 1)
        left_lay.addWidget(self.project_edit)
        left_lay.addWidget(btn_archive_project)

        right = QWidget()
        right_lay = QVBoxLayout(right)
        right_lay.setContentsMargins(0, 0, 0, 0)
        self.task_list = QListWidget()
        self.task_edit = QLineEdit()
        self.task_edit.setPlaceholderText("New task…")
        task_btns = QHBoxLayout()
        btn_done = QPushButton("Toggle done")
        btn_archive_task = QPushButton("Archive task")
        task_btns.addWidget(btn_done)
        task_btns.addWidget(btn_archive_task)
        right_lay.addWidget(self.task_list, 1)
        right_lay.addWidget(self.task_edit)
        right_lay.addLayout(task_btns)

        split.addWidget(left)
        split.addWidget(right)
        main.addWidget(split, 1)

        self.total_label = QLabel("Today total: 00:00:00")
        self.total_label.setStyleSheet("color: #666; font-size: 12px; padding: 2px;")
        main.addWidget(self.total_label)

        # Ticker: elapsed labels, overlay snapshot, queued stop requests
        self.timer = QTimer(self)
        self.timer.setInterval(1000)
        self.timer.timeout.connect(self._tick)
        self.timer.start()

        self.btn_rotate_project.clicked.connect(self.rotate_project_and_track)
        self.btn_rotate_task.clicked.connect(self.rotate_task_and_track)
        self.btn_start.clicked.connect(self._start_selected)
        self.btn_stop.clicked.connect(self._stop_all)
        self.project_edit.returnPressed.connect(self._add_project)
        self.task_edit.returnPressed.connect(self._add_task)
        btn_archive_project.clicked.connect(self._archive_project)
        btn_done.clicked.connect(self._toggle_done)
        btn_archive_task.clicked.connect(self._archive_task)
        self.project_list.currentRowChanged.connect(self._on_project_selected)
        self.task_list.itemDoubleClicked.connect(lambda _item: self._start_selected())

        self.refresh()

    # ---- selection helpers ----
    def _current_project(self) -> Project | None:
        return self.engine.get_current_project()

    def _selected_task_id(self) -> int | None:
        item = self.task_list.currentItem()
        return item.data(Qt.UserRole) if item else None

    # ---- actions ----
    def rotate_project_and_track(self):
        _, project = self.engine.rotate_project()
        if project is not None:
            task = project.current_task()
            if task is not None and task.done_at is None:
                self.engine.start_tracking(project.id, task.id, self.multi_check.isChecked())
        self._after_data_change()

    def rotate_task_and_track(self):
        task = self.engine.rotate_task()
        if task is not None:
            self.engine.start_tracking(task.project_id, task.id, self.multi_check.isChecked())
        self._after_data_change()

    def _start_selected(self):
        project = self._current_project()
        task_id = self._selected_task_id()
        if project is None or task_id is None:
            QMessageBox.information(self, "None", "Select a task to track")
            return
        self.engine.start_tracking(project.id, task_id, self.multi_check.isChecked())
        self._after_data_change()

    def _stop_all(self):
        self.engine.stop_tracking()
        self._after_data_change()

    def _add_project(self):
        name = self.project_edit.text().strip()
        if not name:
            return
        self.engine.add_project(name)
        self.project_edit.clear()
        self._after_data_change()

    def _add_task(self):
        name = self.task_edit.text().strip()
        project = self._current_project()
        if not name or project is None:
            return
        self.engine.add_task(project.id, name)
        self.task_edit.clear()
        self._after_data_change()

    def _archive_project(self):
        project = self._current_project()
        if project is None:
            return
        if QMessageBox.question(self, "Confirm", f"Archive project '{project.name}'?") != QMessageBox.Yes:
            return
        self.engine.remove_project(project.id)
        self._after_data_change()

    def _toggle_done(self):
        project = self._current_project()
        task_id = self._selected_task_id()
        if project is None or task_id is None:
            return
        task = project.find_task(task_id)
        if task is not None:
            self.engine.toggle_task_done(project.id, task_id, task.done_at is None)
        self._after_data_change()

    def _archive_task(self):
        project = self._current_project()
        task_id = self._selected_task_id()
        if project is None or task_id is None:
            return
        self.engine.remove_task(project.id, task_id)
        self._after_data_change()

    def _on_project_selected(self, row: int):
        if row < 0 or row == self.engine.get_current_project_index():
            return
        self.engine.set_current_project(row)
        # promotion reorders the list
        QTimer.singleShot(0, self.refresh)

    # ---- refresh ----
    def refresh(self):
        projects = self.engine.get_projects()
        current = self.engine.get_current_project_index()
        tracked = {s.task_id for s in self.engine.get_active_tracking()}

        self.project_list.blockSignals(True)
        self.project_list.clear()
        for p in projects:
            self.project_list.addItem(f"{p.name}  ({format_duration(p.total_seconds)})")
        if projects:
            self.project_list.setCurrentRow(current)
        self.project_list.blockSignals(False)

        self.task_list.clear()
        project = projects[current] if projects else None
        if project is not None:
            for i, t in enumerate(project.tasks):
                marker = "▶ " if t.id in tracked else ("✓ " if t.done_at else "")
                item = QListWidgetItem(f"{marker}{t.name}  ({format_duration(t.time_seconds)})")
                item.setData(Qt.UserRole, t.id)
                self.task_list.addItem(item)
                if i == project.current_task_index:
                    self.task_list.setCurrentItem(item)

        now = self.engine.clock()
        text = f"Today total: {seconds_to_hms(self.engine.stats.today_total(now))}"
        per_task = self.engine.stats.summarize_today(now)
        if per_task:
            text += "  |  " + ", ".join(f"{name} {format_duration(secs)}" for name, secs in per_task[:3])
        self.total_label.setText(text)
        self._tick()

    def _after_data_change(self):
        self.refresh()
        self.data_changed.emit()

    def _tick(self):
        stopped = self.engine.poll_overlay_stops()
        state = self.engine.publish_timer_state()
        if state.is_empty:
            self.active_label.setText("No active task")
            self.elapsed_label.setText("00:00:00")
        else:
            first = state.entries[0]
            extra = f" (+{len(state.entries) - 1})" if len(state.entries) > 1 else ""
            self.active_label.setText(f"Active: {first.project_name} · {first.task_name}{extra}")
            self.elapsed_label.setText(seconds_to_hms(first.elapsed_seconds))
        self.title_changed.emit(self.engine.tray_title())
        if stopped:
            self._after_data_change()


class StatsTab(QWidget):
    def __init__(self, engine: RotatorEngine, tz: tzinfo | None = None):
        super().__init__()
        self.engine = engine
        self.tz = tz

        main = QVBoxLayout(self)

        tb = QToolBar()
        self.range_box = QComboBox()
        for label, _ in STATS_RANGES:
            self.range_box.addItem(label)
        self.range_box.setCurrentIndex(1)
        btn_refresh = QAction("Refresh", self)
        tb.addWidget(QLabel("Range:"))
        tb.addWidget(self.range_box)
        tb.addSeparator()
        tb.addAction(btn_refresh)
        main.addWidget(tb)

        self.projects_model = TotalsTableModel("Project")
        self.daily_model = TotalsTableModel("Date")
        self.hourly_model = TotalsTableModel("Hour (UTC)")
        self.entries_model = EntriesTableModel([], tz)

        totals_row = QHBoxLayout()
        for model in (self.projects_model, self.daily_model, self.hourly_model):
            t = _table(model)
            t.setSortingEnabled(True)
            totals_row.addWidget(t)
        main.addLayout(totals_row, 1)

        self.entries_table = _table(self.entries_model)
        self.entries_table.setColumnHidden(0, True)  # hide ID
        main.addWidget(self.entries_table, 1)

        self.total_label = QLabel("Total: 00:00:00")
        main.addWidget(self.total_label)

        self.range_box.currentIndexChanged.connect(lambda _i: self.refresh())
        btn_refresh.triggered.connect(self.refresh)

        self.refresh()

    def _range(self) -> tuple[int, int] | None:
        _, days = STATS_RANGES[self.range_box.currentIndex()]
        if days is None:
            return None
        now = self.engine.clock()
        return local_day_bounds(now, self.tz, days_back=days)

    def refresh(self):
        rng = self._range()
        if rng is None:
            entries = self.engine.get_all_time_entries()
            start, end = (entries[0].start_time, entries[-1].start_time) if entries else (0, 0)
        else:
            start, end = rng
            entries = self.engine.get_time_entries(start, end)

        self.projects_model.set_rows(
            [(s.project_name, s.total_seconds) for s in self.engine.get_project_time_stats(start, end)]
        )
        self.daily_model.set_rows(
            [(d.date, d.total_seconds) for d in self.engine.get_daily_activity(start, end)]
        )
        self.hourly_model.set_rows(
            [(f"{h.hour:02d}:00", h.total_seconds) for h in self.engine.get_hourly_activity(start, end)]
        )

        project_names, task_names = {}, {}
        for p in self.engine.get_all_projects_with_status():
            project_names[p.id] = p.name
            for t in p.tasks:
                task_names[t.id] = t.name
        self.entries_model.set_rows(entries, project_names, task_names)
        self.entries_table.setColumnHidden(0, True)
        self.total_label.setText(f"Total: {seconds_to_hms(self.projects_model.total())}")


class ArchiveTab(QWidget):
    data_changed = Signal()

    def __init__(self, engine: RotatorEngine):
        super().__init__()
        self.engine = engine

        main = QVBoxLayout(self)
        tb = QToolBar()
        btn_refresh = QAction("Refresh", self)
        btn_restore = QAction("Restore Selected", self)
        btn_delete = QAction("Delete Permanently", self)
        tb.addAction(btn_refresh)
        tb.addAction(btn_restore)
        tb.addAction(btn_delete)
        main.addWidget(tb)

        self.tree = QTreeWidget()
        self.tree.setHeaderLabels(["Name", "Time", "Status"])
        self.tree.header().setSectionResizeMode(QHeaderView.Stretch)
        main.addWidget(self.tree, 1)

        btn_refresh.triggered.connect(self.refresh)
        btn_restore.triggered.connect(self.restore_selected)
        btn_delete.triggered.connect(self.delete_selected)

        self.refresh()

    def refresh(self):
        self.tree.clear()
        for p in self.engine.get_all_projects_with_status():
            total = sum(t.time_seconds for t in p.tasks)
            status = "archived" if p.archived_at is not None else "active"
            top = QTreeWidgetItem([p.name, format_duration(total), status])
            top.setData(0, Qt.UserRole, ("project", p.id, None))
            for t in p.tasks:
                if t.archived_at is not None:
                    t_status = "archived"
                elif t.done_at is not None:
                    t_status = "done"
                else:
                    t_status = ""
                child = QTreeWidgetItem([t.name, format_duration(t.time_seconds), t_status])
                child.setData(0, Qt.UserRole, ("task", t.id, p.id))
                top.addChild(child)
            self.tree.addTopLevelItem(top)

    def _selected(self):
        item = self.tree.currentItem()
        return item.data(0, Qt.UserRole) if item else None

    def restore_selected(self):
        sel = self._selected()
        if not sel:
            QMessageBox.information(self, "None", "Select a project or task to restore")
            return
        kind, id_, project_id = sel
        if kind == "project":
            self.engine.restore_project(id_)
        else:
            self.engine.restore_task(project_id, id_)
        self.refresh()
        self.data_changed.emit()

    def delete_selected(self):
        sel = self._selected()
        if not sel:
            QMessageBox.information(self, "None", "Select a project or task to delete")
            return
        kind, id_, _ = sel
        if QMessageBox.question(
            self, "Confirm delete",
            f"Permanently delete this {kind} and its time entries?\n\nThis cannot be undone."
        ) != QMessageBox.Yes:
            return
        if kind == "project":
            self.engine.delete_project_permanent(id_)
        else:
            self.engine.delete_task_permanent(id_)
        self.refresh()
        self.data_changed.emit()


# ---------- Main window ----------

class MainWindow(QMainWindow):
    def __init__(self, engine: RotatorEngine, settings: RotatorSettings):
        super().__init__()
        self.engine = engine
        self.setWindowTitle(APP_TITLE)
        self.resize(900, 700)

        QApplication.setStyle(QStyleFactory.create("Fusion"))
        self.setStyleSheet(
            """
            QWidget { font-size: 14px; }
            QTableView { gridline-color: #444; }
            QHeaderView::section { font-weight: 600; padding: 6px; }
            QPushButton { padding: 8px 14px; border-radius: 10px; }
            QLineEdit { padding: 6px 8px; }
            QToolBar { spacing: 8px; }
            """
        )

        tz = resolve_tz(settings.timezone)
        tabs = QTabWidget()
        self.rotator_tab = RotatorTab(engine, settings)
        self.stats_tab = StatsTab(engine, tz)
        self.archive_tab = ArchiveTab(engine)
        tabs.addTab(self.rotator_tab, "Rotate")
        tabs.addTab(self.stats_tab, "Statistics")
        tabs.addTab(self.archive_tab, "Archive")
        self.setCentralWidget(tabs)

        self.rotator_tab.data_changed.connect(self.stats_tab.refresh)
        self.rotator_tab.data_changed.connect(self.archive_tab.refresh)
        self.archive_tab.data_changed.connect(self.rotator_tab.refresh)
        self.archive_tab.data_changed.connect(self.stats_tab.refresh)

        # Rotation shortcuts, active while the window has focus
        QShortcut(QKeySequence("Ctrl+Shift+P"), self, self.rotator_tab.rotate_project_and_track)
        QShortcut(QKeySequence("Ctrl+Shift+T"), self, self.rotator_tab.rotate_task_and_track)

        self._build_menu()
        self._build_tray()

        self.panel = FloatingTimerPanel(engine.overlay, refresh_ms=settings.overlay_poll_ms)
        self.panel.open_requested.connect(lambda _task_id: self.bring_to_front())
        if settings.show_floating_timer:
            self.panel.show()

    def _build_menu(self):
        menu = self.menuBar().addMenu("&Data")
        act_mock = QAction("Add sample data", self)
        act_reset = QAction("Reset database…", self)
        menu.addAction(act_mock)
        menu.addAction(act_reset)
        act_mock.triggered.connect(self._add_mock_data)
        act_reset.triggered.connect(self._reset)

        view = self.menuBar().addMenu("&View")
        self.act_panel = QAction("Floating timer", self, checkable=True)
        view.addAction(self.act_panel)
        self.act_panel.toggled.connect(lambda on: self.panel.setVisible(on))

    def _build_tray(self):
        self.tray = QSystemTrayIcon(self.style().standardIcon(QStyle.SP_MediaPlay), self)
        menu = QMenu()
        menu.addAction("Show", self.bring_to_front)
        menu.addAction("Stop all timers", self.rotator_tab._stop_all)
        menu.addSeparator()
        menu.addAction("Quit", QApplication.quit)
        self.tray.setContextMenu(menu)
        self.tray.activated.connect(lambda _reason: self.bring_to_front())
        self.rotator_tab.title_changed.connect(self.tray.setToolTip)
        self.rotator_tab.title_changed.connect(self._on_title)
        if QSystemTrayIcon.isSystemTrayAvailable():
            self.tray.show()

    def showEvent(self, e):
        super().showEvent(e)
        self.act_panel.setChecked(self.panel.isVisible())

    def _on_title(self, title: str):
        self.setWindowTitle(f"{title} - {APP_TITLE}" if self.engine.get_active_tracking() else APP_TITLE)

    def _add_mock_data(self):
        self.engine.add_mock_data()
        self.rotator_tab._after_data_change()

    def _reset(self):
        if QMessageBox.question(
            self, "Confirm reset",
            "Delete ALL projects, tasks and time entries?\n\nThis cannot be undone."
        ) != QMessageBox.Yes:
            return
        self.engine.reset_database()
        self.rotator_tab._after_data_change()

    def bring_to_front(self):
        if self.isMinimized():
            self.showNormal()
        else:
            self.show()
        self.raise_()
        self.activateWindow()

    def closeEvent(self, e):
        # hide to tray instead of quitting while a tray icon exists
        if self.tray.isVisible():
            e.ignore()
            self.hide()
            return
        super().closeEvent(e)
        QApplication.quit()


# ---------- Single-instance main ----------

def main():
    import sys

    settings = get_settings()
    configure_logging(settings.log_level)

    # Per-user key so different users on the same machine can each run their own instance.
    singleton_key = f"project_rotator_{os.getuid()}"

    app = QApplication(sys.argv)
    app.setQuitOnLastWindowClosed(False)

    # Try to connect to an existing instance.
    socket = QLocalSocket()
    socket.connectToServer(singleton_key)

    if socket.waitForConnected(150):
        # Existing instance is running: ask it to raise its window, then exit.
        socket.write(b"RAISE")
        socket.flush()
        socket.waitForBytesWritten(150)
        socket.disconnectFromServer()
        sys.exit(0)

    # No existing instance: clean up any stale server and become the primary instance.
    QLocalServer.removeServer(singleton_key)
    server = QLocalServer()
    if not server.listen(singleton_key):
        QMessageBox.critical(
            None,
            "Error",
            f"Could not start single-instance server '{singleton_key}'."
        )
        sys.exit(1)

    engine = RotatorEngine.open(settings.db_path, tz=resolve_tz(settings.timezone))
    logger.info("database at %s", settings.db_path)
    w = MainWindow(engine, settings)

    # Keep the server alive as long as the main window exists.
    w._singleton_server = server  # type: ignore[attr-defined]

    def handle_new_connection():
        conn = server.nextPendingConnection()
        if conn is None:
            return

        def on_ready_read():
            # Any message from a secondary instance means "raise the window".
            _ = conn.readAll()
            w.bring_to_front()
            conn.disconnectFromServer()
            conn.deleteLater()

        conn.readyRead.connect(on_ready_read)

    server.newConnection.connect(handle_new_connection)
    app.aboutToQuit.connect(engine.close)

    w.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
