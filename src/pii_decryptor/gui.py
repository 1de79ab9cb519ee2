"""Standalone tkinter viewer for browsing and exporting tables with encrypted columns.

Cross-platform (macOS + Linux). Nothing leaves the machine.
Launch with: python -m pii_decryptor.gui
"""

import asyncio
import logging
import os
import queue
import sys
import threading

try:
    import tkinter as tk
    from tkinter import filedialog, messagebox, ttk
except ImportError:
    print("Error: tkinter is not installed.")
    print()
    print("tkinter is a system package and cannot be installed with pip.")
    print("Install it for your OS:")
    print()
    print("  Ubuntu/Debian:  sudo apt install python3-tk")
    print("  Fedora/RHEL:    sudo dnf install python3-tkinter")
    print("  Arch:           sudo pacman -S tk")
    print("  macOS (brew):   brew install python-tk")
    print()
    sys.exit(1)

from pii_decryptor.config import Config
from pii_decryptor.controller import AppController
from pii_decryptor.exporter import ExportError, ExportFormat
from pii_decryptor.log import configure_logging
from pii_decryptor.reader import ParseError

logger = logging.getLogger(__name__)

ENCRYPTED_MARK = "\U0001f512"
POLL_INTERVAL_MS = 50


class DecryptorGUI:
    """Data preview with per-column decryption, pagination and ZIP export."""

    def __init__(self, root, controller=None, threaded=True):
        self.root = root
        self.root.title("Decryptor PII")
        self.root.geometry("900x600")
        self.root.minsize(600, 400)

        self.controller = controller or AppController(Config.load())
        self.threaded = threaded
        self.current_rows = []  # rows shown in the preview, already resolved
        self._render_request = 0
        self._results = queue.Queue()

        self._build_ui()
        if self.threaded:
            self.root.after(POLL_INTERVAL_MS, self._poll_results)

    def _build_ui(self):
        main = ttk.Frame(self.root, padding=10)
        main.pack(fill=tk.BOTH, expand=True)

        # Key section
        key_frame = ttk.LabelFrame(main, text="Key", padding=5)
        key_frame.pack(fill=tk.X, pady=(0, 10))

        self.key_var = tk.StringVar()
        self.key_entry = ttk.Entry(key_frame, textvariable=self.key_var, width=50)
        self.key_entry.pack(side=tk.LEFT, fill=tk.X, expand=True, padx=(0, 5))
        self.key_button = ttk.Button(
            key_frame, text="Set Encryption Key", command=self._toggle_key
        )
        self.key_button.pack(side=tk.LEFT)

        # File section
        file_frame = ttk.Frame(main)
        file_frame.pack(fill=tk.X, pady=(0, 10))
        ttk.Button(file_frame, text="Open file...", command=self._browse_input).pack(
            side=tk.LEFT
        )
        self.status_var = tk.StringVar(value="Open a CSV or Excel file")
        ttk.Label(file_frame, textvariable=self.status_var, foreground="gray").pack(
            side=tk.LEFT, padx=10
        )

        # Preview header with export buttons
        preview_bar = ttk.Frame(main)
        preview_bar.pack(fill=tk.X)
        ttk.Label(preview_bar, text="Data Preview").pack(side=tk.LEFT)
        self.export_buttons = {}
        for fmt, label in ((ExportFormat.CSV, "Export CSV"), (ExportFormat.XLSX, "Export XLSX")):
            btn = ttk.Button(
                preview_bar, text=label, command=lambda f=fmt: self._export(f), state=tk.DISABLED
            )
            btn.pack(side=tk.RIGHT, padx=(5, 0))
            self.export_buttons[fmt] = btn

        # Table
        table_frame = ttk.Frame(main)
        table_frame.pack(fill=tk.BOTH, expand=True, pady=5)
        self.tree = ttk.Treeview(table_frame, show="headings")
        xscroll = ttk.Scrollbar(table_frame, orient=tk.HORIZONTAL, command=self.tree.xview)
        self.tree.configure(xscrollcommand=xscroll.set)
        self.tree.pack(fill=tk.BOTH, expand=True)
        xscroll.pack(fill=tk.X)

        # Pagination
        page_bar = ttk.Frame(main)
        page_bar.pack(fill=tk.X, pady=(5, 0))
        self.summary_var = tk.StringVar()
        ttk.Label(page_bar, textvariable=self.summary_var).pack(side=tk.LEFT)
        self.pages_frame = ttk.Frame(page_bar)
        self.pages_frame.pack(side=tk.RIGHT)

    # ── File loading ──────────────────────────────────────────────

    def _browse_input(self):
        path = filedialog.askopenfilename(
            title="Select a table",
            filetypes=[
                ("Tables", "*.csv *.xlsx *.xls"),
                ("CSV files", "*.csv"),
                ("Excel files", "*.xlsx *.xls"),
                ("All files", "*.*"),
            ],
        )
        if path:
            self.load_path(path)

    def load_path(self, path):
        """Load a file; on failure the current table stays on screen."""
        try:
            table = self.controller.load_file(path)
        except ParseError as e:
            logger.exception("Failed to load %s", path)
            messagebox.showerror("Error", f"Failed to read file:\n{e}")
            return False

        self.status_var.set(
            f"{os.path.basename(path)}: {table.row_count} row(s), {table.column_count} column(s)"
        )
        self._build_columns()
        for btn in self.export_buttons.values():
            btn.configure(state=tk.NORMAL)
        self.refresh()
        return True

    def _build_columns(self):
        headers = self.controller.table.headers
        column_ids = [f"c{i}" for i in range(len(headers))]
        self.tree.delete(*self.tree.get_children())
        self.tree["columns"] = column_ids
        for col_id in column_ids:
            self.tree.column(col_id, width=120, stretch=True)
        self._update_headings()

    def _update_headings(self):
        encryption = self.controller.state.encryption
        for i, header in enumerate(self.controller.table.headers):
            text = f"{ENCRYPTED_MARK} {header}" if encryption.is_encrypted(i) else header
            self.tree.heading(f"c{i}", text=text, command=lambda h=header: self.toggle_column(h))

    # ── Column and key toggles ────────────────────────────────────

    def toggle_column(self, header):
        self.controller.toggle_encryption(header)
        self._update_headings()
        self.refresh()

    def _toggle_key(self):
        if self.controller.state.key.is_set:
            self.controller.unset_key()
            self.key_entry.configure(state=tk.NORMAL)
            self.key_button.configure(text="Set Encryption Key")
        else:
            self.controller.set_key(self.key_var.get())
            self.key_entry.configure(state=tk.DISABLED)
            self.key_button.configure(text="Unset Encryption Key")
        if self.controller.table is not None:
            self.refresh()

    # ── Rendering ─────────────────────────────────────────────────

    def refresh(self):
        """Re-project the current page; older pending projections are dropped."""
        self._render_request += 1
        request = self._render_request
        self._run(self.controller.render_page(), lambda page: self._show_page(request, page))

    def _show_page(self, request, page):
        if page is None or request != self._render_request:
            return
        self.current_rows = page.rows
        self.tree.delete(*self.tree.get_children())
        for row in page.rows:
            self.tree.insert("", tk.END, values=row)
        self._update_pagination()

    def _update_pagination(self):
        for child in self.pages_frame.winfo_children():
            child.destroy()

        first, last, total = self.controller.entry_range()
        self.summary_var.set(f"Showing {first} to {last} of {total} entries")

        current = self.controller.current_page
        total_pages = self.controller.total_pages()

        prev_btn = ttk.Button(self.pages_frame, text="Previous", command=self._previous_page)
        prev_btn.pack(side=tk.LEFT)
        if current <= 1:
            prev_btn.configure(state=tk.DISABLED)

        for num in self.controller.page_numbers():
            if num is None:
                ttk.Label(self.pages_frame, text="...").pack(side=tk.LEFT, padx=3)
                continue
            btn = ttk.Button(
                self.pages_frame, text=str(num), width=4, command=lambda n=num: self.go_to_page(n)
            )
            if num == current:
                btn.state(["pressed"])
            btn.pack(side=tk.LEFT)

        next_btn = ttk.Button(self.pages_frame, text="Next", command=self._next_page)
        next_btn.pack(side=tk.LEFT)
        if current >= total_pages:
            next_btn.configure(state=tk.DISABLED)

    def go_to_page(self, page):
        self.controller.go_to_page(page)
        self.refresh()

    def _previous_page(self):
        self.controller.previous_page()
        self.refresh()

    def _next_page(self):
        self.controller.next_page()
        self.refresh()

    # ── Export ────────────────────────────────────────────────────

    def _export(self, fmt):
        if self.controller.table is None or self.controller.is_exporting(fmt):
            return
        directory = filedialog.askdirectory(
            title="Save exported-data.zip to", initialdir=self.controller.config.export_directory
        )
        if directory:
            self.export_to(fmt, directory)

    def export_to(self, fmt, directory):
        button = self.export_buttons[ExportFormat(fmt)]
        button.configure(state=tk.DISABLED)

        def _done(path):
            button.configure(state=tk.NORMAL)
            self.status_var.set(f"Exported to {path}")

        def _failed(exc):
            button.configure(state=tk.NORMAL)
            messagebox.showerror("Export Error", str(exc))

        self._run(self.controller.export_to(fmt, directory), _done, _failed, ExportError)

    # ── Async plumbing ────────────────────────────────────────────

    def _run(self, coro, on_done, on_error=None, expected=()):
        """
        Run a coroutine and hand its result to ``on_done`` on the Tk thread.

        Exceptions of the ``expected`` types go to ``on_error``; anything else
        is logged and shown.
        """
        if not self.threaded:
            self._deliver(*self._execute(coro), on_done, on_error, expected)
            return

        def _worker():
            self._results.put((*self._execute(coro), on_done, on_error, expected))

        threading.Thread(target=_worker, daemon=True).start()

    @staticmethod
    def _execute(coro):
        try:
            return asyncio.run(coro), None
        except Exception as e:
            return None, e

    def _deliver(self, result, error, on_done, on_error, expected):
        if error is None:
            on_done(result)
        elif on_error is not None and isinstance(error, expected):
            logger.error("%s", error)
            on_error(error)
        else:
            logger.error("Background task failed", exc_info=error)
            messagebox.showerror("Error", str(error))

    def _poll_results(self):
        while True:
            try:
                item = self._results.get_nowait()
            except queue.Empty:
                break
            self._deliver(*item)
        self.root.after(POLL_INTERVAL_MS, self._poll_results)


def main():
    config = Config.load()
    configure_logging(config.log_level)
    root = tk.Tk()
    DecryptorGUI(root, controller=AppController(config))
    root.mainloop()


if __name__ == "__main__":
    main()
