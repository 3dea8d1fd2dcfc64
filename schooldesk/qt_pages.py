"""Qt pages and dialogs: custom tabs, debtors, payments and the side ledgers."""
from __future__ import annotations

from typing import Any, Callable

from PySide6 import QtCore, QtGui, QtWidgets

from . import ledgers, records
from .aggregates import Debtor, debtor_report, total_debtors
from .amounts import format_naira
from .constants import CLASS_LIST, DEFAULT_PARTY_EVENT, PAYMENT_PRESET, SESSION_TERMS, STUDENT_NAME, TERM_KEYS
from .ledgers import BookRow, Expense, PartyRow, SessionTerm, today
from .records import Payment, Student
from .tabs import CustomTable


class CustomTabDialog(QtWidgets.QDialog):
    """Create a new custom tab: name, optional preset and columns."""
    def __init__(self, parent: QtWidgets.QWidget):
        super().__init__(parent)
        self.setWindowTitle("Create New Custom Tab")
        self.setModal(True)
        self.setMinimumWidth(440)

        root = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()

        self.name = QtWidgets.QLineEdit()
        self.preset = QtWidgets.QComboBox()
        self.preset.addItem("None", None)
        self.preset.addItem("Payment Template", PAYMENT_PRESET)
        self.columns = QtWidgets.QLineEdit()
        self.columns.setPlaceholderText("Column 1, Column 2, Column 3")
        self.lbl_columns = QtWidgets.QLabel("Columns (comma separated)")

        form.addRow("Tab name", self.name)
        form.addRow("Preset", self.preset)
        form.addRow(self.lbl_columns, self.columns)
        root.addLayout(form)

        btns = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Ok | QtWidgets.QDialogButtonBox.Cancel)
        btns.button(QtWidgets.QDialogButtonBox.Ok).setText("Create")
        btns.accepted.connect(self._on_ok)
        btns.rejected.connect(self.reject)
        root.addWidget(btns)

        self.preset.currentIndexChanged.connect(self._on_preset_changed)

    def _on_preset_changed(self, *_args) -> None:
        payment = self.preset.currentData() == PAYMENT_PRESET
        self.columns.setVisible(not payment)
        self.lbl_columns.setVisible(not payment)

    def _on_ok(self) -> None:
        if not self.name.text().strip():
            QtWidgets.QMessageBox.warning(self, "Validation", "Tab name is required.")
            return
        if self.preset.currentData() is None and not self.columns.text().strip():
            QtWidgets.QMessageBox.warning(self, "Validation", "Please provide columns for the tab.")
            return
        self.accept()

    def get_data(self) -> tuple[str, str | None, str]:
        return self.name.text().strip(), self.preset.currentData(), self.columns.text()


class AddStudentsDialog(QtWidgets.QDialog):
    """Pick students, grouped by class."""
    def __init__(self, parent: QtWidgets.QWidget, *, tab_name: str, students: list[Student]):
        super().__init__(parent)
        self.setWindowTitle(f"Add Student to {tab_name}")
        self.setModal(True)
        self.setMinimumSize(420, 480)
        self._students = students

        root = QtWidgets.QVBoxLayout(self)
        root.addWidget(QtWidgets.QLabel("Select Student by Class"))

        self.tree = QtWidgets.QTreeWidget()
        self.tree.setHeaderHidden(True)
        groups: dict[str, QtWidgets.QTreeWidgetItem] = {}
        for i, s in enumerate(students):
            grp = groups.get(s.class_name)
            if grp is None:
                grp = QtWidgets.QTreeWidgetItem([s.class_name or "(No class)"])
                self.tree.addTopLevelItem(grp)
                groups[s.class_name] = grp
            item = QtWidgets.QTreeWidgetItem([s.name])
            item.setFlags(item.flags() | QtCore.Qt.ItemIsUserCheckable)
            item.setCheckState(0, QtCore.Qt.Unchecked)
            item.setData(0, QtCore.Qt.UserRole, i)
            grp.addChild(item)
        root.addWidget(self.tree, 1)

        self.btns = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Ok | QtWidgets.QDialogButtonBox.Cancel)
        self.btns.accepted.connect(self.accept)
        self.btns.rejected.connect(self.reject)
        root.addWidget(self.btns)

        self.tree.itemChanged.connect(lambda *_: self._update_ok())
        self._update_ok()

    def _update_ok(self) -> None:
        n = len(self.get_selected())
        ok = self.btns.button(QtWidgets.QDialogButtonBox.Ok)
        ok.setText(f"Add Selected ({n})")
        ok.setEnabled(n > 0)

    def get_selected(self) -> list[Student]:
        picked: list[int] = []
        for g in range(self.tree.topLevelItemCount()):
            grp = self.tree.topLevelItem(g)
            for c in range(grp.childCount()):
                item = grp.child(c)
                if item.checkState(0) == QtCore.Qt.Checked:
                    picked.append(int(item.data(0, QtCore.Qt.UserRole)))
        return [self._students[i] for i in sorted(picked)]


class RowDialog(QtWidgets.QDialog):
    """Edit every field of one row; computed fields are shown read-only."""
    def __init__(self, parent: QtWidgets.QWidget, *, table: CustomTable, row_index: int):
        super().__init__(parent)
        self.setWindowTitle("Edit Row")
        self.setModal(True)
        self.setMinimumWidth(420)

        root = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()
        self.inputs: dict[str, QtWidgets.QLineEdit] = {}
        for col in table.columns:
            # payment rows keep their student; plain tabs edit it like any column
            if table.is_payment and col == STUDENT_NAME:
                continue
            e = QtWidgets.QLineEdit(str(table.cell(row_index, col)))
            e.setEnabled(table.is_editable(col))
            self.inputs[col] = e
            form.addRow(col, e)
        root.addLayout(form)

        btns = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Save | QtWidgets.QDialogButtonBox.Cancel)
        btns.accepted.connect(self.accept)
        btns.rejected.connect(self.reject)
        root.addWidget(btns)

    def get_values(self) -> dict[str, Any]:
        return {col: e.text() for col, e in self.inputs.items() if e.isEnabled()}


class CustomTableModel(QtCore.QAbstractTableModel):
    """Presents one custom tab; edits are handed to ``on_edit(row, column, value)``."""

    def __init__(self, table: CustomTable | None = None, on_edit: Callable[[int, str, Any], bool] | None = None):
        super().__init__()
        self._table = table
        self._on_edit = on_edit

    def set_table(self, table: CustomTable | None) -> None:
        self.beginResetModel()
        self._table = table
        self.endResetModel()

    def table(self) -> CustomTable | None:
        return self._table

    def rowCount(self, parent: QtCore.QModelIndex = QtCore.QModelIndex()) -> int:  # noqa: N802
        if parent.isValid() or self._table is None:
            return 0
        return len(self._table.rows)

    def columnCount(self, parent: QtCore.QModelIndex = QtCore.QModelIndex()) -> int:  # noqa: N802
        if parent.isValid() or self._table is None:
            return 0
        return len(self._table.columns)

    def headerData(self, section: int, orientation: QtCore.Qt.Orientation, role: int = QtCore.Qt.DisplayRole):  # noqa: N802
        if role != QtCore.Qt.DisplayRole or self._table is None:
            return None
        if orientation == QtCore.Qt.Horizontal:
            if 0 <= section < len(self._table.columns):
                return self._table.columns[section]
            return None
        return str(section + 1)

    def data(self, index: QtCore.QModelIndex, role: int = QtCore.Qt.DisplayRole):  # noqa: N802
        t = self._table
        if t is None or not index.isValid() or not (0 <= index.row() < len(t.rows)):
            return None
        col = t.columns[index.column()]
        value = t.cell(index.row(), col)

        if role == QtCore.Qt.DisplayRole:
            if t.is_numeric(col) and isinstance(value, (int, float)) and not isinstance(value, bool):
                return f"{value:,}"
            return "" if value is None else str(value)
        if role == QtCore.Qt.EditRole:
            return "" if value is None else str(value)
        if role == QtCore.Qt.TextAlignmentRole and t.is_numeric(col):
            return int(QtCore.Qt.AlignRight | QtCore.Qt.AlignVCenter)
        if role == QtCore.Qt.ForegroundRole and not t.is_editable(col):
            return QtGui.QColor(170, 179, 194)
        return None

    def flags(self, index: QtCore.QModelIndex) -> QtCore.Qt.ItemFlags:
        base = super().flags(index)
        if self._table is None or not index.isValid():
            return base
        if self._table.is_editable(self._table.columns[index.column()]):
            return base | QtCore.Qt.ItemIsEditable
        return base

    def setData(self, index: QtCore.QModelIndex, value: Any, role: int = QtCore.Qt.EditRole) -> bool:  # noqa: N802
        if role != QtCore.Qt.EditRole or self._table is None or not index.isValid() or self._on_edit is None:
            return False
        col = self._table.columns[index.column()]
        return bool(self._on_edit(index.row(), col, value))


class CustomTabPage(QtWidgets.QWidget):
    """One custom tab: its table plus rename, column, row and delete actions."""
    def __init__(self, parent: QtWidgets.QWidget, main_window):
        super().__init__(parent)
        self.main_window = main_window
        self.tab_name: str | None = None

        root = QtWidgets.QVBoxLayout(self)
        root.setContentsMargins(16, 16, 16, 16)
        root.setSpacing(12)

        head = QtWidgets.QFrame()
        head.setObjectName("Card")
        hly = QtWidgets.QHBoxLayout(head)
        hly.setContentsMargins(12, 12, 12, 12)
        hly.setSpacing(10)

        self.lbl_title = QtWidgets.QLabel("")
        self.lbl_title.setObjectName("TopTitle")
        self.btn_rename = QtWidgets.QPushButton("Rename")
        self.btn_delete_tab = QtWidgets.QPushButton("Delete Tab")
        self.btn_delete_tab.setProperty("class", "Danger")
        hly.addWidget(self.lbl_title)
        hly.addWidget(self.btn_rename)
        hly.addStretch(1)
        hly.addWidget(self.btn_delete_tab)
        root.addWidget(head)

        tools = QtWidgets.QFrame()
        tools.setObjectName("Card")
        tly = QtWidgets.QHBoxLayout(tools)
        tly.setContentsMargins(12, 12, 12, 12)
        tly.setSpacing(10)

        self.btn_add_students = QtWidgets.QPushButton("Add Student")
        self.btn_add_students.setProperty("class", "Primary")
        self.btn_add_row = QtWidgets.QPushButton("Add Row")
        self.btn_add_row.setProperty("class", "Primary")
        self.btn_columns = QtWidgets.QPushButton("Edit Columns")
        self.btn_set_amount = QtWidgets.QPushButton("Set Amount for All")
        self.btn_edit_row = QtWidgets.QPushButton("Edit Row")
        self.btn_delete_row = QtWidgets.QPushButton("Delete Row")
        self.btn_delete_row.setProperty("class", "Danger")
        for b in [self.btn_add_students, self.btn_add_row, self.btn_columns, self.btn_set_amount]:
            tly.addWidget(b)
        tly.addStretch(1)
        tly.addWidget(self.btn_edit_row)
        tly.addWidget(self.btn_delete_row)
        root.addWidget(tools)

        self.model = CustomTableModel(None, on_edit=self._edit_cell)
        self.table = QtWidgets.QTableView()
        self.table.setModel(self.model)
        self.table.setSelectionBehavior(QtWidgets.QAbstractItemView.SelectRows)
        self.table.setSelectionMode(QtWidgets.QAbstractItemView.SingleSelection)
        self.table.setEditTriggers(
            QtWidgets.QAbstractItemView.DoubleClicked | QtWidgets.QAbstractItemView.EditKeyPressed
        )
        self.table.horizontalHeader().setStretchLastSection(True)
        root.addWidget(self.table, 1)

        self.btn_rename.clicked.connect(self.rename_tab)
        self.btn_delete_tab.clicked.connect(self.delete_tab)
        self.btn_add_students.clicked.connect(self.add_students)
        self.btn_add_row.clicked.connect(self.add_row)
        self.btn_columns.clicked.connect(self.edit_columns)
        self.btn_set_amount.clicked.connect(self.set_amount)
        self.btn_edit_row.clicked.connect(self.edit_row)
        self.btn_delete_row.clicked.connect(self.delete_row)

    @property
    def engine(self):
        return self.main_window.engine

    def show_table(self, table: CustomTable | None) -> None:
        self.tab_name = table.name if table else None
        self.lbl_title.setText(table.name if table else "")
        self.model.set_table(table)
        payment = bool(table and table.is_payment)
        self.btn_add_students.setVisible(payment)
        self.btn_set_amount.setVisible(payment)
        self.btn_add_row.setVisible(not payment)
        self.table.resizeColumnsToContents()

    def _selected_row(self) -> int | None:
        rows = self.table.selectionModel().selectedRows()
        return rows[0].row() if rows else None

    def _run(self, context: str, title: str, fn: Callable[[], Any]) -> bool:
        try:
            fn()
            return True
        except Exception as e:
            self.main_window.err_logger.log_exception(e, context)
            self.main_window._show_error(title, e)
            return False
        finally:
            # deferred: may be called from inside setData
            QtCore.QTimer.singleShot(0, self.main_window.refresh_custom_tabs)

    # ---------- Actions ----------
    def _edit_cell(self, row: int, column: str, value: Any) -> bool:
        if self.tab_name is None:
            return False
        name = self.tab_name
        return self._run("qt_edit_cell", "Edit cell failed", lambda: self.engine.edit_cell(name, row, column, value))

    def rename_tab(self) -> None:
        if self.tab_name is None:
            return
        old = self.tab_name
        new, ok = QtWidgets.QInputDialog.getText(self, "Rename Tab", "New name", text=old)
        if not ok:
            return
        self._run("qt_rename_tab", "Rename tab failed", lambda: self.engine.rename_table(old, new))

    def delete_tab(self) -> None:
        if self.tab_name is None:
            return
        name = self.tab_name
        if QtWidgets.QMessageBox.question(
            self, "Confirm Delete Tab", f'Are you sure you want to delete the "{name}" tab?'
        ) != QtWidgets.QMessageBox.Yes:
            return
        try:
            self.engine.delete_table(name)
            self.main_window.show_page("dashboard")
            self.main_window.statusBar().showMessage(f"Tab deleted: {name}")
        except Exception as e:
            self.main_window.err_logger.log_exception(e, "qt_delete_tab")
            self.main_window._show_error("Failed to delete tab", e)
        finally:
            self.main_window.refresh_custom_tabs()

    def edit_columns(self) -> None:
        if self.tab_name is None:
            return
        name = self.tab_name
        current = ", ".join(self.engine.get_table(name).columns)
        text, ok = QtWidgets.QInputDialog.getText(self, "Edit Columns", "Columns (comma separated)", text=current)
        if not ok:
            return
        self._run("qt_update_columns", "Update columns failed", lambda: self.engine.update_columns(name, text))

    def add_students(self) -> None:
        if self.tab_name is None:
            return
        name = self.tab_name
        dlg = AddStudentsDialog(self, tab_name=name, students=self.main_window.students)
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        picked = dlg.get_selected()
        tuition = self.main_window.tuition
        if self._run("qt_add_students", "Add students failed", lambda: self.engine.add_students(name, picked, tuition)):
            self.main_window.statusBar().showMessage(f"{len(picked)} students added to tab")

    def add_row(self) -> None:
        if self.tab_name is None:
            return
        name = self.tab_name
        self._run("qt_add_row", "Add row failed", lambda: self.engine.add_blank_row(name))

    def set_amount(self) -> None:
        if self.tab_name is None:
            return
        name = self.tab_name
        text, ok = QtWidgets.QInputDialog.getText(self, "Set Amount", "Amount for every row")
        if not ok:
            return
        self._run("qt_set_amount", "Set amount failed", lambda: self.engine.set_amount_for_all(name, text))

    def edit_row(self) -> None:
        row = self._selected_row()
        if self.tab_name is None or row is None:
            return
        name = self.tab_name
        dlg = RowDialog(self, table=self.engine.get_table(name), row_index=row)
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        values = dlg.get_values()
        self._run("qt_edit_row", "Edit row failed", lambda: self.engine.edit_row(name, row, values))

    def delete_row(self) -> None:
        row = self._selected_row()
        if self.tab_name is None or row is None:
            return
        name = self.tab_name
        if self._run("qt_delete_row", "Delete row failed", lambda: self.engine.delete_row(name, row)):
            self.main_window.statusBar().showMessage("Row removed from tab")


class DebtorsPage(QtWidgets.QWidget):
    """Outstanding balances per class, with a copyable text version."""
    def __init__(self, parent: QtWidgets.QWidget):
        super().__init__(parent)
        root = QtWidgets.QVBoxLayout(self)
        root.setContentsMargins(16, 16, 16, 16)
        root.setSpacing(12)

        self.lbl_total = QtWidgets.QLabel("Total Debtors: 0")
        self.lbl_total.setObjectName("TopTitle")
        root.addWidget(self.lbl_total)

        self.text = QtWidgets.QPlainTextEdit()
        self.text.setReadOnly(True)
        root.addWidget(self.text, 1)

        self.btn_copy = QtWidgets.QPushButton("Copy Debtor List")
        self.btn_copy.setProperty("class", "Primary")
        self.btn_copy.clicked.connect(self.copy_report)
        root.addWidget(self.btn_copy)

    def set_debtors(self, debtors: dict[str, list[Debtor]]) -> None:
        self.lbl_total.setText(f"Total Debtors: {total_debtors(debtors)}")
        self.text.setPlainText(debtor_report(debtors))

    def copy_report(self) -> None:
        QtWidgets.QApplication.clipboard().setText(self.text.toPlainText())


# ---------- Shared helpers for the ledger pages ----------
def _controls_card() -> tuple[QtWidgets.QFrame, QtWidgets.QHBoxLayout]:
    card = QtWidgets.QFrame()
    card.setObjectName("Card")
    ly = QtWidgets.QHBoxLayout(card)
    ly.setContentsMargins(12, 12, 12, 12)
    ly.setSpacing(10)
    return card, ly


def _make_table(headers: list[str]) -> QtWidgets.QTableWidget:
    t = QtWidgets.QTableWidget()
    t.setColumnCount(len(headers))
    t.setHorizontalHeaderLabels(headers)
    t.setSelectionBehavior(QtWidgets.QAbstractItemView.SelectRows)
    t.setSelectionMode(QtWidgets.QAbstractItemView.SingleSelection)
    t.setEditTriggers(QtWidgets.QAbstractItemView.NoEditTriggers)
    t.verticalHeader().setVisible(False)
    t.horizontalHeader().setStretchLastSection(True)
    return t


def _fill_table(t: QtWidgets.QTableWidget, rows: list[list[str]]) -> None:
    t.setRowCount(len(rows))
    for r, values in enumerate(rows):
        for c, v in enumerate(values):
            t.setItem(r, c, QtWidgets.QTableWidgetItem(v))
    t.resizeColumnsToContents()


def _selected(t: QtWidgets.QTableWidget) -> int | None:
    rows = t.selectionModel().selectedRows()
    return rows[0].row() if rows else None


def _amount_box(value: Any = 0) -> QtWidgets.QDoubleSpinBox:
    box = QtWidgets.QDoubleSpinBox()
    box.setRange(0, 100_000_000)
    box.setDecimals(0)
    box.setGroupSeparatorShown(True)
    box.setValue(float(value or 0))
    return box


def _guarded(main_window, context: str, title: str, fn: Callable[[], Any]) -> bool:
    try:
        fn()
        return True
    except Exception as e:
        main_window.err_logger.log_exception(e, context)
        main_window._show_error(title, e)
        return False
    finally:
        main_window.refresh_all()


# ---------- Payments ----------
class PaymentDialog(QtWidgets.QDialog):
    """Record money received for one student's tuition."""
    def __init__(self, parent: QtWidgets.QWidget, *, payment: Payment, symbol: str = "₦"):
        super().__init__(parent)
        self.setWindowTitle(f"Edit Payment: {payment.student_name}")
        self.setModal(True)
        self.setMinimumWidth(420)
        self._amount = payment.amount

        root = QtWidgets.QVBoxLayout(self)
        hdr = QtWidgets.QLabel(f"{payment.student_name} ({payment.class_name})")
        hdr.setObjectName("TopTitle")
        root.addWidget(hdr)
        root.addWidget(QtWidgets.QLabel(f"Tuition: {format_naira(payment.amount, symbol)}"))

        form = QtWidgets.QFormLayout()
        self.amount_paid = _amount_box(payment.amount_paid)
        self.payment_date = QtWidgets.QLineEdit(payment.payment_date or today())
        self.payment_date.setPlaceholderText("YYYY-MM-DD")
        self.scholarship = QtWidgets.QCheckBox("Scholarship student")
        self.scholarship.setChecked(payment.is_scholarship)
        form.addRow("Amount paid", self.amount_paid)
        form.addRow("Payment date", self.payment_date)
        form.addRow("", self.scholarship)
        root.addLayout(form)

        btns = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Save | QtWidgets.QDialogButtonBox.Cancel)
        btns.accepted.connect(self.accept)
        btns.rejected.connect(self.reject)
        root.addWidget(btns)

        self.scholarship.toggled.connect(self._on_scholarship)
        self._on_scholarship(payment.is_scholarship)

    def _on_scholarship(self, checked: bool) -> None:
        if checked:
            self.amount_paid.setValue(float(self._amount or 0))
        self.amount_paid.setEnabled(not checked)

    def get_data(self) -> dict[str, Any]:
        return {
            "amount_paid": self.amount_paid.value(),
            "payment_date": self.payment_date.text().strip(),
            "is_scholarship": self.scholarship.isChecked(),
        }


class PaymentsPage(QtWidgets.QWidget):
    """Tuition payments with class and status filters."""
    def __init__(self, parent: QtWidgets.QWidget, main_window):
        super().__init__(parent)
        self.main_window = main_window
        self._shown: list[Payment] = []

        root = QtWidgets.QVBoxLayout(self)
        root.setContentsMargins(16, 16, 16, 16)
        root.setSpacing(12)

        controls, cly = _controls_card()
        cly.addWidget(QtWidgets.QLabel("Class:"))
        self.class_combo = QtWidgets.QComboBox()
        self.class_combo.addItems(["All", *CLASS_LIST])
        cly.addWidget(self.class_combo)
        cly.addWidget(QtWidgets.QLabel("Status:"))
        self.status_combo = QtWidgets.QComboBox()
        self.status_combo.addItems(["All", "paid", "partial", "unpaid", "scholarship"])
        cly.addWidget(self.status_combo)
        self.search = QtWidgets.QLineEdit()
        self.search.setPlaceholderText("Search student")
        cly.addWidget(self.search)
        self.btn_edit = QtWidgets.QPushButton("Edit Payment")
        self.btn_edit.setProperty("class", "Primary")
        cly.addWidget(self.btn_edit)
        cly.addStretch(1)
        self.btn_reset = QtWidgets.QPushButton("Reset Payments")
        self.btn_reset.setProperty("class", "Danger")
        cly.addWidget(self.btn_reset)
        root.addWidget(controls)

        self.lbl_summary = QtWidgets.QLabel("")
        self.lbl_summary.setObjectName("CardLabel")
        root.addWidget(self.lbl_summary)

        self.table = _make_table(["Student", "Class", "Amount", "Paid", "Balance", "Status", "Date"])
        root.addWidget(self.table, 1)

        self.class_combo.currentIndexChanged.connect(lambda *_: self.refresh())
        self.status_combo.currentIndexChanged.connect(lambda *_: self.refresh())
        self.search.textChanged.connect(lambda *_: self.refresh())
        self.btn_edit.clicked.connect(self.edit_payment)
        self.table.cellDoubleClicked.connect(lambda *_: self.edit_payment())
        self.btn_reset.clicked.connect(self.reset_payments)

    def refresh(self) -> None:
        symbol = self.main_window.settings.currency_symbol
        cls = self.class_combo.currentText()
        status = self.status_combo.currentText()
        needle = self.search.text().strip().lower()
        self._shown = [
            p for p in self.main_window.payments
            if (cls == "All" or p.class_name == cls)
            and (status == "All" or p.status == status)
            and (not needle or needle in p.student_name.lower())
        ]
        _fill_table(self.table, [
            [
                p.student_name,
                p.class_name,
                format_naira(p.amount, symbol),
                format_naira(p.amount_paid, symbol),
                format_naira(p.balance, symbol),
                p.status,
                p.payment_date or "-",
            ]
            for p in self._shown
        ])
        received = sum(p.amount_paid for p in self._shown)
        outstanding = sum(p.balance for p in self._shown if not p.is_scholarship)
        self.lbl_summary.setText(
            f"{len(self._shown)} payment(s) | Received: {format_naira(received, symbol)} | "
            f"Outstanding: {format_naira(outstanding, symbol)}"
        )

    def edit_payment(self) -> None:
        row = _selected(self.table)
        if row is None or row >= len(self._shown) or self._shown[row].id is None:
            return
        payment = self._shown[row]
        dlg = PaymentDialog(self, payment=payment, symbol=self.main_window.settings.currency_symbol)
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        data = dlg.get_data()
        store = self.main_window.store
        if _guarded(self.main_window, "qt_edit_payment", "Update payment failed",
                    lambda: records.edit_payment(store, payment.id, **data)):
            self.main_window.statusBar().showMessage(f"Payment updated: {payment.student_name}")

    def reset_payments(self) -> None:
        if QtWidgets.QMessageBox.question(
            self, "Reset Payments",
            "Clear amount paid and payment date for every student without a scholarship?",
        ) != QtWidgets.QMessageBox.Yes:
            return
        store = self.main_window.store
        _guarded(self.main_window, "qt_reset_payments", "Reset payments failed", lambda: records.reset_payments(store))


# ---------- Books ----------
class LedgerEntryDialog(QtWidgets.QDialog):
    """Amount, deposit, date and note for one book or party record."""
    def __init__(
        self,
        parent: QtWidgets.QWidget,
        *,
        title: str,
        amount: Any = 0,
        deposit: Any = 0,
        entry_date: str | None = None,
        note: str | None = None,
        amount_editable: bool = True,
    ):
        super().__init__(parent)
        self.setWindowTitle(title)
        self.setModal(True)
        self.setMinimumWidth(400)

        root = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()
        self.amount = _amount_box(amount)
        self.amount.setEnabled(amount_editable)
        self.deposit = _amount_box(deposit)
        self.entry_date = QtWidgets.QLineEdit(entry_date or "")
        self.entry_date.setPlaceholderText("YYYY-MM-DD (blank = today)")
        form.addRow("Amount", self.amount)
        form.addRow("Deposit", self.deposit)
        form.addRow("Date", self.entry_date)
        self.note: QtWidgets.QLineEdit | None = None
        if note is not None:
            self.note = QtWidgets.QLineEdit(note)
            form.addRow("Note", self.note)
        root.addLayout(form)

        btns = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Save | QtWidgets.QDialogButtonBox.Cancel)
        btns.accepted.connect(self.accept)
        btns.rejected.connect(self.reject)
        root.addWidget(btns)

    def get_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "amount": self.amount.value(),
            "deposit": self.deposit.value(),
            "date": self.entry_date.text().strip(),
        }
        if self.note is not None:
            data["note"] = self.note.text().strip()
        return data


class BooksPage(QtWidgets.QWidget):
    """Textbook and notebook fees for every student outside the creche."""
    def __init__(self, parent: QtWidgets.QWidget, main_window):
        super().__init__(parent)
        self.main_window = main_window
        self._shown: list[BookRow] = []

        root = QtWidgets.QVBoxLayout(self)
        root.setContentsMargins(16, 16, 16, 16)
        root.setSpacing(12)

        controls, cly = _controls_card()
        cly.addWidget(QtWidgets.QLabel("Type:"))
        self.type_combo = QtWidgets.QComboBox()
        self.type_combo.addItem("Textbooks", "textbook")
        self.type_combo.addItem("Notebooks", "notebook")
        cly.addWidget(self.type_combo)
        self.search = QtWidgets.QLineEdit()
        self.search.setPlaceholderText("Search student")
        cly.addWidget(self.search)
        self.btn_edit = QtWidgets.QPushButton("Edit Record")
        self.btn_edit.setProperty("class", "Primary")
        cly.addWidget(self.btn_edit)
        cly.addStretch(1)
        root.addWidget(controls)

        self.lbl_summary = QtWidgets.QLabel("")
        self.lbl_summary.setObjectName("CardLabel")
        root.addWidget(self.lbl_summary)

        self.table = _make_table(["Student", "Class", "Amount", "Deposit", "Balance", "Date", "Note"])
        root.addWidget(self.table, 1)

        self.type_combo.currentIndexChanged.connect(lambda *_: self.refresh())
        self.search.textChanged.connect(lambda *_: self.refresh())
        self.btn_edit.clicked.connect(self.edit_record)
        self.table.cellDoubleClicked.connect(lambda *_: self.edit_record())

    def refresh(self) -> None:
        symbol = self.main_window.settings.currency_symbol
        book_type = self.type_combo.currentData()
        try:
            saved = ledgers.fetch_books(self.main_window.store, book_type)
        except Exception as e:
            self.main_window.err_logger.log_exception(e, "qt_refresh_books")
            saved = []
        self._shown = ledgers.book_rows(self.main_window.students, saved, book_type, self.search.text())
        _fill_table(self.table, [
            [
                b.student_name,
                b.class_name,
                format_naira(b.amount, symbol),
                format_naira(b.deposit, symbol),
                format_naira(b.balance, symbol),
                b.date or "-",
                b.note,
            ]
            for b in self._shown
        ])
        self.lbl_summary.setText(
            f"{len(self._shown)} student(s) | Outstanding: "
            f"{format_naira(sum(b.balance for b in self._shown), symbol)}"
        )

    def edit_record(self) -> None:
        row = _selected(self.table)
        if row is None or row >= len(self._shown):
            return
        book = self._shown[row]
        dlg = LedgerEntryDialog(
            self, title=f"{book.type.title()}: {book.student_name}",
            amount=book.amount, deposit=book.deposit, entry_date=book.date, note=book.note,
        )
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        data = dlg.get_data()
        updated = BookRow(
            student_id=book.student_id,
            student_name=book.student_name,
            class_name=book.class_name,
            type=book.type,
            amount=data["amount"],
            deposit=data["deposit"],
            date=data["date"] or None,
            note=data["note"],
        )
        store = self.main_window.store
        _guarded(self.main_window, "qt_edit_book", "Save book record failed",
                 lambda: ledgers.upsert_book_row(store, updated))


# ---------- Party ----------
class PartyPage(QtWidgets.QWidget):
    """Party contributions: one amount per class, deposits per student."""
    def __init__(self, parent: QtWidgets.QWidget, main_window):
        super().__init__(parent)
        self.main_window = main_window
        self._shown: list[PartyRow] = []

        root = QtWidgets.QVBoxLayout(self)
        root.setContentsMargins(16, 16, 16, 16)
        root.setSpacing(12)

        controls, cly = _controls_card()
        cly.addWidget(QtWidgets.QLabel("Event:"))
        self.event = QtWidgets.QLineEdit(DEFAULT_PARTY_EVENT)
        cly.addWidget(self.event)
        self.search = QtWidgets.QLineEdit()
        self.search.setPlaceholderText("Search student")
        cly.addWidget(self.search)
        self.btn_class_amount = QtWidgets.QPushButton("Set Class Amount")
        self.btn_deposit = QtWidgets.QPushButton("Record Deposit")
        self.btn_deposit.setProperty("class", "Primary")
        cly.addWidget(self.btn_class_amount)
        cly.addWidget(self.btn_deposit)
        cly.addStretch(1)
        root.addWidget(controls)

        self.lbl_summary = QtWidgets.QLabel("")
        self.lbl_summary.setObjectName("CardLabel")
        root.addWidget(self.lbl_summary)

        self.table = _make_table(["Student", "Class", "Amount", "Deposit", "Balance", "Date"])
        root.addWidget(self.table, 1)

        self.event.editingFinished.connect(self.refresh)
        self.search.textChanged.connect(lambda *_: self.refresh())
        self.btn_class_amount.clicked.connect(self.set_class_amount)
        self.btn_deposit.clicked.connect(self.record_deposit)
        self.table.cellDoubleClicked.connect(lambda *_: self.record_deposit())

    def event_type(self) -> str:
        return self.event.text().strip() or DEFAULT_PARTY_EVENT

    def refresh(self) -> None:
        symbol = self.main_window.settings.currency_symbol
        event = self.event_type()
        store = self.main_window.store
        try:
            party = ledgers.fetch_party(store, event)
            amounts = ledgers.fetch_party_class_amounts(store, event)
        except Exception as e:
            self.main_window.err_logger.log_exception(e, "qt_refresh_party")
            party, amounts = [], {}
        self._shown = ledgers.party_rows(self.main_window.students, party, amounts, self.search.text(), event)
        _fill_table(self.table, [
            [
                p.student_name,
                p.class_name,
                format_naira(p.amount, symbol),
                format_naira(p.deposit, symbol),
                format_naira(p.balance, symbol),
                p.payment_date or "-",
            ]
            for p in self._shown
        ])
        self.lbl_summary.setText(
            f"{event} | Collected: {format_naira(sum(p.deposit for p in self._shown), symbol)} | "
            f"Outstanding: {format_naira(sum(p.balance for p in self._shown), symbol)}"
        )

    def set_class_amount(self) -> None:
        cls, ok = QtWidgets.QInputDialog.getItem(self, "Class Amount", "Class", CLASS_LIST, 0, False)
        if not ok:
            return
        amount, ok = QtWidgets.QInputDialog.getInt(self, "Class Amount", f"Amount for {cls}", 0, 0, 10_000_000, 500)
        if not ok:
            return
        store, students, event = self.main_window.store, self.main_window.students, self.event_type()
        _guarded(self.main_window, "qt_party_amount", "Set party amount failed",
                 lambda: ledgers.set_party_class_amount(store, students, cls, amount, event))

    def record_deposit(self) -> None:
        row = _selected(self.table)
        if row is None or row >= len(self._shown):
            return
        entry = self._shown[row]
        student = next((s for s in self.main_window.students if s.id == entry.student_id), None)
        if student is None:
            return
        dlg = LedgerEntryDialog(
            self, title=f"Party Deposit: {entry.student_name}",
            amount=entry.amount, deposit=entry.deposit, entry_date=entry.payment_date, amount_editable=False,
        )
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        data = dlg.get_data()
        store, event = self.main_window.store, self.event_type()
        _guarded(self.main_window, "qt_party_deposit", "Record deposit failed",
                 lambda: ledgers.record_party_deposit(store, student, data["deposit"], data["date"], event))


# ---------- Expenses ----------
class ExpenseDialog(QtWidgets.QDialog):
    def __init__(self, parent: QtWidgets.QWidget, *, expense: Expense | None = None):
        super().__init__(parent)
        self.setWindowTitle("Edit Expense" if expense else "Add Expense")
        self.setModal(True)
        self.setMinimumWidth(400)

        root = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()
        self.category = QtWidgets.QLineEdit(expense.category if expense else "")
        self.amount = _amount_box(expense.amount if expense else 0)
        self.note = QtWidgets.QLineEdit(expense.note if expense else "")
        form.addRow("Category *", self.category)
        form.addRow("Amount", self.amount)
        form.addRow("Note", self.note)
        root.addLayout(form)

        btns = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Save | QtWidgets.QDialogButtonBox.Cancel)
        btns.accepted.connect(self._on_ok)
        btns.rejected.connect(self.reject)
        root.addWidget(btns)

    def _on_ok(self) -> None:
        if not self.category.text().strip():
            QtWidgets.QMessageBox.warning(self, "Validation", "Category is required.")
            return
        self.accept()

    def get_data(self) -> dict[str, Any]:
        return {"category": self.category.text().strip(), "amount": self.amount.value(), "note": self.note.text().strip()}


class ExpensesPage(QtWidgets.QWidget):
    """Running expenses per term."""
    def __init__(self, parent: QtWidgets.QWidget, main_window):
        super().__init__(parent)
        self.main_window = main_window
        self._shown: list[Expense] = []

        root = QtWidgets.QVBoxLayout(self)
        root.setContentsMargins(16, 16, 16, 16)
        root.setSpacing(12)

        controls, cly = _controls_card()
        cly.addWidget(QtWidgets.QLabel("Term:"))
        self.term_combo = QtWidgets.QComboBox()
        for key in TERM_KEYS:
            self.term_combo.addItem(f"{key.title()} Term", key)
        cly.addWidget(self.term_combo)
        self.btn_add = QtWidgets.QPushButton("Add Expense")
        self.btn_add.setProperty("class", "Primary")
        self.btn_edit = QtWidgets.QPushButton("Edit Expense")
        cly.addWidget(self.btn_add)
        cly.addWidget(self.btn_edit)
        cly.addStretch(1)
        root.addWidget(controls)

        self.lbl_total = QtWidgets.QLabel("")
        self.lbl_total.setObjectName("CardLabel")
        root.addWidget(self.lbl_total)

        self.table = _make_table(["Category", "Amount", "Note"])
        root.addWidget(self.table, 1)

        self.term_combo.currentIndexChanged.connect(lambda *_: self.refresh())
        self.btn_add.clicked.connect(self.add_expense)
        self.btn_edit.clicked.connect(self.edit_expense)
        self.table.cellDoubleClicked.connect(lambda *_: self.edit_expense())

    def refresh(self) -> None:
        symbol = self.main_window.settings.currency_symbol
        try:
            self._shown = ledgers.fetch_expenses(self.main_window.store, self.term_combo.currentData())
        except Exception as e:
            self.main_window.err_logger.log_exception(e, "qt_refresh_expenses")
            self._shown = []
        _fill_table(self.table, [[e.category, format_naira(e.amount, symbol), e.note] for e in self._shown])
        self.lbl_total.setText(f"Total: {format_naira(ledgers.expense_total(self._shown), symbol)}")

    def add_expense(self) -> None:
        dlg = ExpenseDialog(self)
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        data = dlg.get_data()
        store, term = self.main_window.store, self.term_combo.currentData()
        _guarded(self.main_window, "qt_add_expense", "Add expense failed",
                 lambda: ledgers.add_expense(store, term, **data))

    def edit_expense(self) -> None:
        row = _selected(self.table)
        if row is None or row >= len(self._shown) or self._shown[row].id is None:
            return
        expense = self._shown[row]
        dlg = ExpenseDialog(self, expense=expense)
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        data = dlg.get_data()
        store = self.main_window.store
        _guarded(self.main_window, "qt_edit_expense", "Update expense failed",
                 lambda: ledgers.update_expense(store, expense.id, **data))


# ---------- Sessions ----------
class SessionDialog(QtWidgets.QDialog):
    def __init__(self, parent: QtWidgets.QWidget, *, session: SessionTerm | None = None):
        super().__init__(parent)
        self.setWindowTitle("Edit Term" if session else "Add Term")
        self.setModal(True)
        self.setMinimumWidth(400)
        self._id = session.id if session else None

        root = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()
        self.term = QtWidgets.QComboBox()
        self.term.addItems(list(SESSION_TERMS))
        if session:
            self.term.setCurrentText(session.term)
        self.year = QtWidgets.QLineEdit(session.year if session else "")
        self.year.setPlaceholderText("2024/2025")
        self.open_date = QtWidgets.QLineEdit((session.open_date if session else None) or "")
        self.open_date.setPlaceholderText("YYYY-MM-DD")
        self.close_date = QtWidgets.QLineEdit((session.close_date if session else None) or "")
        self.close_date.setPlaceholderText("YYYY-MM-DD")
        self.holiday_weeks = QtWidgets.QSpinBox()
        self.holiday_weeks.setRange(0, 52)
        self.holiday_weeks.setValue(session.holiday_weeks if session else 0)
        form.addRow("Term", self.term)
        form.addRow("Year *", self.year)
        form.addRow("Opens", self.open_date)
        form.addRow("Closes", self.close_date)
        form.addRow("Holiday weeks", self.holiday_weeks)
        root.addLayout(form)

        btns = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Save | QtWidgets.QDialogButtonBox.Cancel)
        btns.accepted.connect(self._on_ok)
        btns.rejected.connect(self.reject)
        root.addWidget(btns)

    def _on_ok(self) -> None:
        if not self.year.text().strip():
            QtWidgets.QMessageBox.warning(self, "Validation", "Year is required.")
            return
        self.accept()

    def get_session(self) -> SessionTerm:
        return SessionTerm(
            id=self._id,
            term=self.term.currentText(),
            year=self.year.text().strip(),
            open_date=self.open_date.text().strip() or None,
            close_date=self.close_date.text().strip() or None,
            holiday_weeks=int(self.holiday_weeks.value()),
        )


class SessionsPage(QtWidgets.QWidget):
    """School calendar: terms with their opening and closing dates."""
    def __init__(self, parent: QtWidgets.QWidget, main_window):
        super().__init__(parent)
        self.main_window = main_window
        self._shown: list[SessionTerm] = []

        root = QtWidgets.QVBoxLayout(self)
        root.setContentsMargins(16, 16, 16, 16)
        root.setSpacing(12)

        controls, cly = _controls_card()
        self.btn_add = QtWidgets.QPushButton("Add Term")
        self.btn_add.setProperty("class", "Primary")
        self.btn_edit = QtWidgets.QPushButton("Edit Term")
        cly.addWidget(self.btn_add)
        cly.addWidget(self.btn_edit)
        cly.addStretch(1)
        root.addWidget(controls)

        self.table = _make_table(["Term", "Year", "Opens", "Closes", "Holiday Weeks"])
        root.addWidget(self.table, 1)

        self.btn_add.clicked.connect(self.add_session)
        self.btn_edit.clicked.connect(self.edit_session)
        self.table.cellDoubleClicked.connect(lambda *_: self.edit_session())

    def refresh(self) -> None:
        try:
            self._shown = ledgers.fetch_sessions(self.main_window.store)
        except Exception as e:
            self.main_window.err_logger.log_exception(e, "qt_refresh_sessions")
            self._shown = []
        _fill_table(self.table, [
            [s.term, s.year, s.open_date or "-", s.close_date or "-", str(s.holiday_weeks)] for s in self._shown
        ])

    def _save(self, dlg: SessionDialog) -> None:
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        session = dlg.get_session()
        store = self.main_window.store
        _guarded(self.main_window, "qt_save_session", "Save term failed", lambda: ledgers.save_session(store, session))

    def add_session(self) -> None:
        self._save(SessionDialog(self))

    def edit_session(self) -> None:
        row = _selected(self.table)
        if row is None or row >= len(self._shown):
            return
        self._save(SessionDialog(self, session=self._shown[row]))
