"""
kvm_service/manager_gui.py
PyQt6 manager window + system tray for the KVM screen service.
Shows configured vs. actual resolution, connected clients, and lets the
operator change the stream settings through the same RPC path clients use.
"""

import json
import logging
import os
import sys
import threading

from PyQt6.QtCore import Qt, QTimer, pyqtSignal, QObject, QLockFile
from PyQt6.QtGui import QIcon, QPixmap, QPainter, QColor, QBrush
from PyQt6.QtWidgets import (
    QApplication,
    QComboBox,
    QDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QMenu,
    QPushButton,
    QSpinBox,
    QSystemTrayIcon,
    QVBoxLayout,
)

from .screen_config import (
    RESOLUTION_MAP, VALID_BIT_RATE, VALID_QUALITY, FPS_MIN, FPS_MAX, changed_settings,
)

log = logging.getLogger(__name__)

_STYLE = """
QWidget         { background: #1a1a2e; color: #e4e4f0; font-family: 'Ubuntu', sans-serif; font-size: 13px; }
QPushButton     { background: #2d2d4a; border: 1px solid #3d3d5c; border-radius: 6px; padding: 6px 14px; }
QPushButton:hover { background: #3d3d5c; }
QPushButton.primary { background: #6C63FF; border: none; color: #fff; font-weight: 600; }
QPushButton.danger  { background: #FF4F5E; border: none; color: #fff; font-weight: 600; }
QLabel          { background: transparent; }
QGroupBox       { border: 1px solid #3d3d5c; border-radius: 8px; margin-top: 12px; padding: 10px; }
QGroupBox::title { background: transparent; subcontrol-origin: margin; left: 10px; top: -7px; padding: 0 4px; color: #6C63FF; font-weight: 600; }
QSpinBox, QComboBox { background: #12121a; border: 1px solid #3d3d5c; border-radius: 5px; padding: 4px 8px; }
"""

_SUCCESS = "#22D47E"
_WARNING = "#FFCC44"
_ERROR   = "#FF4F5E"


# ──────────────────────────────────────────────────────────────────────
# Signal bridge (so the monitor thread can update UI)
# ──────────────────────────────────────────────────────────────────────

class _Bridge(QObject):
    resolution_pushed = pyqtSignal(int, int)


class _WindowSubscriber:
    """Registered with the monitor like any client; pushes land on the Qt thread."""

    def __init__(self, bridge: _Bridge):
        self._bridge = bridge

    def send_line(self, text: str):
        msg = json.loads(text)
        if msg.get("type") == "resolution_change":
            self._bridge.resolution_pushed.emit(msg["width"], msg["height"])


# ──────────────────────────────────────────────────────────────────────
# Manager window
# ──────────────────────────────────────────────────────────────────────

class ManagerWindow(QDialog):
    def __init__(self, service, parent=None):
        super().__init__(parent)
        self._svc    = service
        self._bridge = _Bridge()
        self._bridge.resolution_pushed.connect(self._on_resolution_pushed)
        self._subscriber = _WindowSubscriber(self._bridge)

        self.setWindowTitle("KVM Screen Service — Manager")
        self.setMinimumWidth(380)
        self.setWindowFlags(Qt.WindowType.Window)

        self._build_ui()
        self._svc.resolution_monitor.add_subscriber(self._subscriber)

        self._timer = QTimer()
        self._timer.timeout.connect(self._refresh_stats)
        self._timer.start(1000)
        self._refresh_stats()

    def _build_ui(self):
        l = QVBoxLayout(self)
        l.setSpacing(10)

        hdr = QLabel("KVM Screen Service")
        hdr.setStyleSheet("font-size: 20px; font-weight: 700; color: #6C63FF; padding-bottom: 4px;")
        l.addWidget(hdr)

        # Status
        grp_status = QGroupBox("Status")
        fl = QFormLayout(grp_status)
        self._lbl_status     = QLabel("Running")
        self._lbl_status.setStyleSheet(f"color: {_SUCCESS}; font-weight: 600;")
        self._lbl_clients    = QLabel("0")
        self._lbl_monitoring = QLabel("—")
        self._lbl_actual     = QLabel("—")
        self._lbl_configured = QLabel("—")
        self._lbl_pushed     = QLabel("—")
        self._lbl_port       = QLabel(f"{self._svc.host}:{self._svc.port}")
        fl.addRow("Service:",     self._lbl_status)
        fl.addRow("Clients:",     self._lbl_clients)
        fl.addRow("Monitoring:",  self._lbl_monitoring)
        fl.addRow("Actual:",      self._lbl_actual)
        fl.addRow("Configured:",  self._lbl_configured)
        fl.addRow("Last pushed:", self._lbl_pushed)
        fl.addRow("Port:",        self._lbl_port)
        l.addWidget(grp_status)

        # Settings
        grp_set = QGroupBox("Stream Settings")
        fl2 = QFormLayout(grp_set)

        self._res_combo = QComboBox()
        for height in sorted(RESOLUTION_MAP, reverse=True):
            width = RESOLUTION_MAP[height]
            label = "Auto" if height == 0 else f"{width} × {height}"
            self._res_combo.addItem(label, height)

        self._fps_spin = QSpinBox(); self._fps_spin.setRange(FPS_MIN, FPS_MAX)
        self._gop_spin = QSpinBox(); self._gop_spin.setRange(1, 100)

        self._quality_combo = QComboBox()
        for q in sorted(VALID_QUALITY, reverse=True):
            self._quality_combo.addItem(f"{q} %", q)
        for br in sorted(VALID_BIT_RATE, reverse=True):
            self._quality_combo.addItem(f"{br} kbps", br)

        # Widgets follow the live config until the operator touches one
        self._editing = False
        self._sync_settings()
        self._res_combo.activated.connect(self._mark_editing)
        self._quality_combo.activated.connect(self._mark_editing)
        self._fps_spin.valueChanged.connect(self._mark_editing)
        self._gop_spin.valueChanged.connect(self._mark_editing)

        fl2.addRow("Resolution:",      self._res_combo)
        fl2.addRow("Frame rate:",      self._fps_spin)
        fl2.addRow("Quality / rate:",  self._quality_combo)
        fl2.addRow("GOP:",             self._gop_spin)
        btn_apply = QPushButton("Apply")
        btn_apply.setProperty("class", "primary")
        btn_apply.clicked.connect(self._apply_settings)
        fl2.addRow("", btn_apply)
        l.addWidget(grp_set)

        btn_row = QHBoxLayout()
        self._btn_stop = QPushButton("Stop Service")
        self._btn_stop.setProperty("class", "danger")
        self._btn_stop.clicked.connect(self._stop_service)
        btn_minimize = QPushButton("Minimize")
        btn_minimize.clicked.connect(self.showMinimized)
        btn_row.addWidget(btn_minimize)
        btn_row.addWidget(self._btn_stop)
        l.addLayout(btn_row)

    def _refresh_stats(self):
        info = self._svc.rpc.dispatch({"type": "get_screen"})
        if not info.get("ok"):
            return
        self._lbl_actual.setText(f"{info['actualWidth']} × {info['actualHeight']}")
        if info["isAutoMode"]:
            self._lbl_configured.setText("Auto")
        else:
            self._lbl_configured.setText(f"{info['configuredWidth']} × {info['configuredHeight']}")
        self._lbl_clients.setText(str(self._svc.client_count))
        monitoring = self._svc.resolution_monitor.is_monitoring
        self._lbl_monitoring.setText("yes" if monitoring else "idle")
        if not self._editing:
            self._sync_settings()

    def _mark_editing(self, *_):
        self._editing = True

    def _sync_settings(self):
        cfg = self._svc.screen.snapshot()
        widgets = (self._res_combo, self._fps_spin, self._gop_spin, self._quality_combo)
        for w in widgets:
            w.blockSignals(True)
        try:
            self._res_combo.setCurrentIndex(max(0, self._res_combo.findData(cfg["height"])))
            self._fps_spin.setValue(cfg["fps"])
            self._gop_spin.setValue(cfg["gop"] or 30)
            self._quality_combo.setCurrentIndex(max(0, self._quality_combo.findData(cfg["quality"])))
        finally:
            for w in widgets:
                w.blockSignals(False)

    def _apply_settings(self):
        updates = changed_settings(
            self._svc.screen.snapshot(),
            resolution=self._res_combo.currentData(),
            fps=self._fps_spin.value(),
            quality=self._quality_combo.currentData(),
            gop=self._gop_spin.value(),
        )
        self._editing = False
        failed = []
        for key, value in updates:
            resp = self._svc.rpc.dispatch({"type": "set_screen", "key": key, "value": value})
            if not resp.get("ok"):
                failed.append(key)
        if failed:
            log.warning("Settings not applied: %s", ", ".join(failed))
            self._on_status_changed(f"Update failed ({', '.join(failed)})", _ERROR)
        else:
            self._on_status_changed("Running", _SUCCESS)
        self._refresh_stats()

    def _on_resolution_pushed(self, width: int, height: int):
        self._lbl_pushed.setText(f"{width} × {height}")

    def _on_status_changed(self, text: str, color: str):
        self._lbl_status.setText(text)
        self._lbl_status.setStyleSheet(f"color: {color}; font-weight: 600;")

    def _stop_service(self):
        self._on_status_changed("Stopping …", _WARNING)
        threading.Thread(
            target=lambda: (self._svc.stop(), QApplication.quit()),
            daemon=True,
        ).start()

    def closeEvent(self, event):
        """X button — stop the service and terminate the process."""
        event.accept()
        self._timer.stop()
        self._svc.resolution_monitor.remove_subscriber(self._subscriber)
        threading.Thread(
            target=lambda: (self._svc.stop(), QApplication.quit()),
            daemon=True,
        ).start()


# ──────────────────────────────────────────────────────────────────────
# Tray icon
# ──────────────────────────────────────────────────────────────────────

def _make_icon():
    pm = QPixmap(64, 64)
    pm.fill(Qt.GlobalColor.transparent)
    p = QPainter(pm)
    p.setRenderHint(QPainter.RenderHint.Antialiasing)
    p.setBrush(QBrush(QColor("#6C63FF")))
    p.setPen(Qt.PenStyle.NoPen)
    p.drawRoundedRect(6, 10, 52, 36, 6, 6)
    p.setBrush(QBrush(QColor("#c0c0d8")))
    p.drawRect(26, 46, 12, 8)
    p.drawRect(18, 54, 28, 4)
    p.end()
    return QIcon(pm)


def run_manager_gui(service):
    """Call from the entry point's main thread to run the Qt manager."""
    import tempfile

    app = QApplication.instance() or QApplication(sys.argv)

    # ── Single-instance guard ─────────────────────────────────────────
    _lock = QLockFile(os.path.join(tempfile.gettempdir(), "kvm-screen-service-manager.lock"))
    if not _lock.tryLock(100):
        log.warning("Manager GUI already running — refusing to open a second instance.")
        return
    app._single_instance_lock = _lock

    app.setStyleSheet(_STYLE)
    app.setQuitOnLastWindowClosed(True)

    win = ManagerWindow(service)
    win.show()

    def _show_manager():
        win.showNormal()
        win.raise_()
        win.activateWindow()

    tray = QSystemTrayIcon(_make_icon())
    tray.setToolTip("KVM Screen Service")
    menu = QMenu()
    menu.addAction("Show Manager", _show_manager)
    menu.addSeparator()
    menu.addAction("Quit", lambda: (service.stop(), app.quit()))
    tray.setContextMenu(menu)
    tray.activated.connect(
        lambda r: _show_manager() if r == QSystemTrayIcon.ActivationReason.DoubleClick else None
    )
    tray.show()

    app.exec()
