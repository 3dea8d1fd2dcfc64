from __future__ import annotations

from PySide6 import QtCore, QtGui, QtWidgets
from PySide6.QtCharts import QBarCategoryAxis, QBarSeries, QBarSet, QChart, QChartView, QValueAxis

from . import records
from .aggregates import dashboard_summary, debtors_by_class
from .amounts import format_naira
from .constants import APP_NAME, CLASS_LIST, DATA_XLSX_PATH, ERROR_LOG_PATH
from .engine import CustomTabEngine
from .logger import ErrorLogger, configure_logging
from .qt_pages import (
    BooksPage,
    CustomTabDialog,
    CustomTabPage,
    DebtorsPage,
    ExpensesPage,
    PartyPage,
    PaymentsPage,
    SessionsPage,
)
from .records import Payment, Student
from .settings_store import SettingsStore
from .storage import ExcelStore


def _app_dark_palette() -> QtGui.QPalette:
    p = QtGui.QPalette()
    p.setColor(QtGui.QPalette.Window, QtGui.QColor(12, 14, 18))
    p.setColor(QtGui.QPalette.WindowText, QtGui.QColor(236, 240, 244))
    p.setColor(QtGui.QPalette.Base, QtGui.QColor(18, 21, 27))
    p.setColor(QtGui.QPalette.AlternateBase, QtGui.QColor(14, 16, 21))
    p.setColor(QtGui.QPalette.Text, QtGui.QColor(236, 240, 244))
    p.setColor(QtGui.QPalette.Button, QtGui.QColor(22, 25, 32))
    p.setColor(QtGui.QPalette.ButtonText, QtGui.QColor(236, 240, 244))
    p.setColor(QtGui.QPalette.Highlight, QtGui.QColor(96, 165, 250))
    p.setColor(QtGui.QPalette.HighlightedText, QtGui.QColor(12, 14, 18))
    return p


def _qss() -> str:
    return """
    QWidget { font-size: 12px; }

    QFrame#Sidebar { background: #0b0d11; border-right: 1px solid #222733; }
    QLabel#AppTitle { font-size: 16px; font-weight: 700; color: #e7edf4; }
    QLabel#SectionTitle { font-size: 11px; font-weight: 700; color: #8b95a7; }
    QLabel#TopTitle { font-size: 14px; font-weight: 700; color: #e7edf4; }

    QPushButton.NavBtn {
        text-align: left;
        padding: 10px 12px;
        border-radius: 10px;
        border: 1px solid transparent;
        color: #e7edf4;
        background: transparent;
    }
    QPushButton.NavBtn:hover { background: #131722; }
    QPushButton.NavBtn[active="true"] { background: #1a1f2b; border: 1px solid #2a3243; }

    QFrame#Card { background: #0f1218; border: 1px solid #222733; border-radius: 14px; }
    QLabel#CardValue { font-size: 18px; font-weight: 800; }
    QLabel#CardLabel { color: #aab3c2; }

    QPushButton.Primary {
        background: #60a5fa; color: #0b0d11; border: 0px;
        padding: 8px 12px; border-radius: 10px; font-weight: 700;
    }
    QPushButton.Danger {
        background: #e11d48; color: white; border: 0px;
        padding: 8px 12px; border-radius: 10px; font-weight: 700;
    }
    QPushButton.Danger:disabled { background: #5b2433; }

    QTableView, QTableWidget, QPlainTextEdit {
        background: #0f1218;
        border: 1px solid #222733;
        border-radius: 14px;
        gridline-color: #1f2431;
    }
    QHeaderView::section { background: #0b0d11; color: #cfd6df; border: 0px; padding: 8px; font-weight: 700; }
    """


class Card(QtWidgets.QFrame):
    def __init__(self, title: str, value: str = "0", *, accent: str | None = None):
        super().__init__()
        self.setObjectName("Card")
        lay = QtWidgets.QVBoxLayout(self)
        lay.setContentsMargins(16, 16, 16, 16)
        lay.setSpacing(6)

        if accent:
            line = QtWidgets.QFrame()
            line.setFixedHeight(3)
            line.setStyleSheet(f"background:{accent}; border-radius:2px;")
            lay.addWidget(line)

        self.lbl_value = QtWidgets.QLabel(value)
        self.lbl_value.setObjectName("CardValue")
        self.lbl_title = QtWidgets.QLabel(title)
        self.lbl_title.setObjectName("CardLabel")
        lay.addWidget(self.lbl_value)
        lay.addWidget(self.lbl_title)
        lay.addStretch(1)

    def set_value(self, v: str) -> None:
        self.lbl_value.setText(v)


class StudentDialog(QtWidgets.QDialog):
    def __init__(self, parent: QtWidgets.QWidget):
        super().__init__(parent)
        self.setWindowTitle("Enroll Student")
        self.setModal(True)
        self.setMinimumWidth(460)

        root = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()
        self.first = QtWidgets.QLineEdit()
        self.last = QtWidgets.QLineEdit()
        self.cls = QtWidgets.QComboBox()
        self.cls.addItems(CLASS_LIST)
        self.age = QtWidgets.QSpinBox()
        self.age.setRange(0, 30)
        self.parent_name = QtWidgets.QLineEdit()
        self.parent_phone = QtWidgets.QLineEdit()

        form.addRow("First name *", self.first)
        form.addRow("Last name", self.last)
        form.addRow("Class", self.cls)
        form.addRow("Age (0 = unknown)", self.age)
        form.addRow("Parent name", self.parent_name)
        form.addRow("Parent phone", self.parent_phone)
        root.addLayout(form)

        btns = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Ok | QtWidgets.QDialogButtonBox.Cancel)
        btns.accepted.connect(self._on_ok)
        btns.rejected.connect(self.reject)
        root.addWidget(btns)

    def _on_ok(self) -> None:
        if not self.first.text().strip():
            QtWidgets.QMessageBox.warning(self, "Validation", "First name is required.")
            self.first.setFocus()
            return
        self.accept()

    def get_student(self) -> Student:
        age = int(self.age.value())
        return Student(
            first_name=self.first.text().strip(),
            last_name=self.last.text().strip(),
            class_name=self.cls.currentText(),
            age=age if age > 0 else None,
            parent_name=self.parent_name.text().strip() or None,
            parent_phone=self.parent_phone.text().strip() or None,
        )


class DashboardPage(QtWidgets.QWidget):
    def __init__(self, parent: QtWidgets.QWidget):
        super().__init__(parent)
        root = QtWidgets.QVBoxLayout(self)
        root.setContentsMargins(16, 16, 16, 16)
        root.setSpacing(14)

        cards = QtWidgets.QHBoxLayout()
        cards.setSpacing(14)
        self._card_students = Card("Total Students", "0", accent="#60a5fa")
        self._card_debtors = Card("Total Debtors", "0", accent="#e11d48")
        self._card_scholarship = Card("Scholarship Students", "0", accent="#34d399")
        self._card_outstanding = Card("Outstanding", "0", accent="#ffb100")
        for c in [self._card_students, self._card_debtors, self._card_scholarship, self._card_outstanding]:
            cards.addWidget(c, 1)
        root.addLayout(cards)

        tools = QtWidgets.QHBoxLayout()
        lbl = QtWidgets.QLabel("Students Per Class (double-click a tuition to change it)")
        lbl.setObjectName("SectionTitle")
        self.btn_enroll = QtWidgets.QPushButton("Enroll Student")
        self.btn_enroll.setProperty("class", "Primary")
        tools.addWidget(lbl)
        tools.addStretch(1)
        tools.addWidget(self.btn_enroll)
        root.addLayout(tools)

        body = QtWidgets.QHBoxLayout()
        body.setSpacing(14)

        self.classes = QtWidgets.QTableWidget()
        self.classes.setColumnCount(3)
        self.classes.setHorizontalHeaderLabels(["Class", "Count", "Tuition"])
        self.classes.setSelectionBehavior(QtWidgets.QAbstractItemView.SelectRows)
        self.classes.setEditTriggers(QtWidgets.QAbstractItemView.NoEditTriggers)
        self.classes.verticalHeader().setVisible(False)
        self.classes.horizontalHeader().setStretchLastSection(True)

        self.chart_classes = QChartView()
        self.chart_classes.setRenderHint(QtGui.QPainter.Antialiasing)
        self.chart_classes.setMinimumHeight(300)
        self.chart_classes.setStyleSheet("background: transparent;")

        body.addWidget(self.classes, 1)
        body.addWidget(self.chart_classes, 1)
        root.addLayout(body, 1)

    def set_summary(
        self, students: list[Student], payments: list[Payment], tuition: dict[str, int], symbol: str = "₦"
    ) -> None:
        s = dashboard_summary(students, payments)
        self._card_students.set_value(str(s.total_students))
        self._card_debtors.set_value(str(s.total_debtors))
        self._card_scholarship.set_value(str(s.scholarship_students))
        self._card_outstanding.set_value(format_naira(s.outstanding, symbol))

        self.classes.setRowCount(len(s.class_counts))
        for row, (cls, count) in enumerate(s.class_counts.items()):
            self.classes.setItem(row, 0, QtWidgets.QTableWidgetItem(cls))
            self.classes.setItem(row, 1, QtWidgets.QTableWidgetItem(str(count)))
            self.classes.setItem(row, 2, QtWidgets.QTableWidgetItem(format_naira(tuition.get(cls, 0), symbol)))
        self.classes.resizeColumnsToContents()
        self.set_classes_chart(s.class_counts)

    def set_classes_chart(self, class_counts: dict[str, int]) -> None:
        cats = list(class_counts.keys())
        barset = QBarSet("Students")
        barset.append([class_counts[k] for k in cats])
        barset.setColor(QtGui.QColor(96, 165, 250))

        series = QBarSeries()
        series.append(barset)

        chart = QChart()
        chart.addSeries(series)
        chart.setBackgroundVisible(False)
        chart.legend().setVisible(False)

        axis_x = QBarCategoryAxis()
        axis_x.append(cats or ["-"])
        axis_x.setLabelsColor(QtGui.QColor(200, 206, 216))
        chart.addAxis(axis_x, QtCore.Qt.AlignBottom)
        series.attachAxis(axis_x)

        axis_y = QValueAxis()
        axis_y.setLabelFormat("%d")
        axis_y.setLabelsColor(QtGui.QColor(200, 206, 216))
        axis_y.setGridLineColor(QtGui.QColor(31, 36, 49))
        chart.addAxis(axis_y, QtCore.Qt.AlignLeft)
        series.attachAxis(axis_y)

        self.chart_classes.setChart(chart)


class MainWindow(QtWidgets.QMainWindow):
    def __init__(self):
        super().__init__()
        self.err_logger = ErrorLogger()
        self.settings_store = SettingsStore()
        self.settings = self.settings_store.load()

        self.store = ExcelStore(DATA_XLSX_PATH)
        self.engine = CustomTabEngine.from_settings(self.store, self.settings)

        self.students: list[Student] = []
        self.payments: list[Payment] = []
        self.tuition: dict[str, int] = dict(self.settings.default_tuition)
        self._current = "dashboard"

        self.setWindowTitle(APP_NAME)
        self.resize(1360, 820)

        self._build_ui()
        self._wire()
        self.refresh_all()

    # ---------- UI ----------
    def _build_ui(self) -> None:
        root = QtWidgets.QWidget()
        self.setCentralWidget(root)
        outer = QtWidgets.QHBoxLayout(root)
        outer.setContentsMargins(0, 0, 0, 0)
        outer.setSpacing(0)

        self.sidebar = QtWidgets.QFrame()
        self.sidebar.setObjectName("Sidebar")
        self.sidebar.setFixedWidth(240)
        sbl = QtWidgets.QVBoxLayout(self.sidebar)
        sbl.setContentsMargins(14, 14, 14, 14)
        sbl.setSpacing(10)

        title = QtWidgets.QLabel(self.settings.school_name)
        title.setObjectName("AppTitle")
        sbl.addWidget(title)
        sbl.addSpacing(6)

        self.nav_buttons: dict[str, QtWidgets.QPushButton] = {}
        self.btn_dash = self._nav_btn("Dashboard", "dashboard")
        self.btn_debtors = self._nav_btn("Debtors", "debtors")
        sbl.addWidget(self.btn_dash)
        sbl.addWidget(self.btn_debtors)
        for text, key in [
            ("Payments", "payments"),
            ("Books", "books"),
            ("Party", "party"),
            ("Expenses", "expenses"),
            ("Sessions", "sessions"),
        ]:
            sbl.addWidget(self._nav_btn(text, key))

        lbl_tabs = QtWidgets.QLabel("CUSTOM TABS")
        lbl_tabs.setObjectName("SectionTitle")
        sbl.addSpacing(8)
        sbl.addWidget(lbl_tabs)
        self.tab_nav = QtWidgets.QVBoxLayout()
        self.tab_nav.setSpacing(6)
        sbl.addLayout(self.tab_nav)

        self.btn_new_tab = QtWidgets.QPushButton("+ New Tab")
        self.btn_new_tab.setProperty("class", "Primary")
        sbl.addWidget(self.btn_new_tab)

        sbl.addStretch(1)
        sbl.addWidget(QtWidgets.QLabel(f"Data: {DATA_XLSX_PATH.name}\nLogs: {ERROR_LOG_PATH.name}"))

        self.pages = QtWidgets.QStackedWidget()
        self.page_dashboard = DashboardPage(self.pages)
        self.page_debtors = DebtorsPage(self.pages)
        self.page_tab = CustomTabPage(self.pages, self)
        self.ledger_pages: dict[str, QtWidgets.QWidget] = {
            "payments": PaymentsPage(self.pages, self),
            "books": BooksPage(self.pages, self),
            "party": PartyPage(self.pages, self),
            "expenses": ExpensesPage(self.pages, self),
            "sessions": SessionsPage(self.pages, self),
        }
        self.pages.addWidget(self.page_dashboard)
        self.pages.addWidget(self.page_debtors)
        self.pages.addWidget(self.page_tab)
        for page in self.ledger_pages.values():
            self.pages.addWidget(page)

        outer.addWidget(self.sidebar)
        outer.addWidget(self.pages, 1)
        self.statusBar().showMessage("Ready")

    def _nav_btn(self, text: str, key: str) -> QtWidgets.QPushButton:
        b = QtWidgets.QPushButton(text)
        b.setProperty("class", "NavBtn")
        b.setProperty("active", "false")
        b.setCursor(QtGui.QCursor(QtCore.Qt.PointingHandCursor))
        b.setMinimumHeight(40)
        self.nav_buttons[key] = b
        return b

    def _wire(self) -> None:
        self.btn_dash.clicked.connect(lambda: self.show_page("dashboard"))
        self.btn_debtors.clicked.connect(lambda: self.show_page("debtors"))
        for key in self.ledger_pages:
            self.nav_buttons[key].clicked.connect(lambda _checked=False, k=key: self.show_page(k))
        self.btn_new_tab.clicked.connect(self.create_tab)
        self.page_dashboard.btn_enroll.clicked.connect(self.enroll_student)
        self.page_dashboard.classes.cellDoubleClicked.connect(self.edit_tuition)

    def _show_error(self, title: str, exc: BaseException) -> None:
        msg = str(exc)
        hint = ""
        if isinstance(exc.__cause__, PermissionError) or isinstance(exc, PermissionError):
            hint = (
                f"\n\nHint: Close '{DATA_XLSX_PATH.name}' in Excel and try again. "
                "The file cannot be saved while another program has it open."
            )
        QtWidgets.QMessageBox.critical(self, title, f"{msg}{hint}")

    # ---------- Navigation ----------
    def show_page(self, key: str) -> None:
        if key.startswith("tab:") and key[4:] not in self.engine.names():
            key = "dashboard"
        self._current = key
        if not key.startswith("tab:"):
            self.engine.active = None
        if key == "debtors":
            self.pages.setCurrentWidget(self.page_debtors)
        elif key in self.ledger_pages:
            self.pages.setCurrentWidget(self.ledger_pages[key])
        elif key.startswith("tab:"):
            self.engine.active = key[4:]
            self.page_tab.show_table(self.engine.get_table(key[4:]))
            self.pages.setCurrentWidget(self.page_tab)
        else:
            self.pages.setCurrentWidget(self.page_dashboard)

        for k, b in self.nav_buttons.items():
            b.setProperty("active", "true" if k == key else "false")
            b.style().unpolish(b)
            b.style().polish(b)

    def _rebuild_tab_nav(self) -> None:
        for key in [k for k in self.nav_buttons if k.startswith("tab:")]:
            b = self.nav_buttons.pop(key)
            self.tab_nav.removeWidget(b)
            b.deleteLater()
        for name in self.engine.names():
            b = self._nav_btn(name, f"tab:{name}")
            b.clicked.connect(lambda _checked=False, n=name: self.show_page(f"tab:{n}"))
            self.tab_nav.addWidget(b)

    # ---------- Data refresh ----------
    def refresh_all(self) -> None:
        try:
            self.students = records.fetch_students(self.store)
            self.payments = records.fetch_payments(self.store)
            self.tuition = records.fetch_tuition(self.store, self.settings.default_tuition)
            self.engine.load()
        except Exception as e:
            self.err_logger.log_exception(e, "qt_refresh_all")
            self._show_error("Load failed", e)
        self.page_dashboard.set_summary(self.students, self.payments, self.tuition, self.settings.currency_symbol)
        self.page_debtors.set_debtors(debtors_by_class(self.payments))
        for page in self.ledger_pages.values():
            page.refresh()
        self.refresh_custom_tabs()

    def refresh_custom_tabs(self) -> None:
        """Redraw tab navigation and follow the engine's active tab."""
        self._rebuild_tab_nav()
        if self.engine.active:
            self.show_page(f"tab:{self.engine.active}")
        elif self._current.startswith("tab:"):
            self.show_page("dashboard")
        else:
            self.show_page(self._current)

    # ---------- Actions ----------
    def create_tab(self) -> None:
        dlg = CustomTabDialog(self)
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        name, preset, columns = dlg.get_data()
        try:
            self.engine.create_table(name, preset, columns)
            self.statusBar().showMessage("Tab created")
        except Exception as e:
            self.err_logger.log_exception(e, "qt_create_tab")
            self._show_error("Failed to create tab", e)
        finally:
            self.refresh_custom_tabs()

    def enroll_student(self) -> None:
        dlg = StudentDialog(self)
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        try:
            student, _payment = records.enroll_student(self.store, dlg.get_student(), self.tuition)
            self.statusBar().showMessage(f"Student saved: {student.name}")
        except Exception as e:
            self.err_logger.log_exception(e, "qt_enroll_student")
            self._show_error("Enroll student failed", e)
        self.refresh_all()

    def edit_tuition(self, row: int, _column: int) -> None:
        item = self.page_dashboard.classes.item(row, 0)
        if item is None:
            return
        cls = item.text()
        amount, ok = QtWidgets.QInputDialog.getInt(
            self, "Tuition", f"Tuition for {cls}", int(self.tuition.get(cls, 0)), 0, 10_000_000, 500
        )
        if not ok:
            return
        try:
            updated = records.apply_tuition(self.store, cls, amount)
            self.statusBar().showMessage(f"Tuition for {cls} updated; {updated} payment(s) re-billed")
        except Exception as e:
            self.err_logger.log_exception(e, "qt_edit_tuition")
            self._show_error("Update tuition failed", e)
        self.refresh_all()


def run_qt_app() -> None:
    configure_logging(ERROR_LOG_PATH.with_name("schooldesk.log"))

    app = QtWidgets.QApplication([])
    app.setApplicationName(APP_NAME)
    app.setStyle("Fusion")
    if SettingsStore().load().appearance_mode == "Dark":
        app.setPalette(_app_dark_palette())
        app.setStyleSheet(_qss())

    w = MainWindow()
    w.show()
    app.exec()
