from __future__ import annotations

import threading
import tkinter as tk
from tkinter import messagebox, ttk
from typing import Any, Callable, Dict, List, Optional, Tuple

from catalog import ListViewState
from circulation import BORROW_STATUSES
from context import AppContext, build_context
from details import BookDetailSession, create_book
from forms import (
    CONDITIONS,
    COPY_STATUSES,
    COVER_TYPES,
    BookForm,
    BorrowForm,
    CopyForm,
    GeneralForm,
    filter_cost_input,
    normalize_cost,
    validate_image_url,
)
from media import fetch_and_cache_cover, load_thumbnail
from models import Book, BookCopy, BorrowRecord, date_only
from notices import ERROR, SUCCESS, WARNING, Toast
from translations import SUPPORTED_LOCALES


# --------------------------------------------------------------------------- #
# Utility helpers
# --------------------------------------------------------------------------- #
def truncate(value: str, length: int) -> str:
    if len(value) <= length:
        return value
    return value[: length - 1] + "…"


def run_in_background(widget: tk.Misc, work: Callable[[], Any], done: Optional[Callable[[Any], None]] = None) -> None:
    """Run ``work`` on a daemon thread and hand its result back on the Tk loop."""

    def _target() -> None:
        result = work()
        if done is not None:
            widget.after(0, lambda: done(result))

    threading.Thread(target=_target, daemon=True).start()


class FieldGrid(ttk.Frame):
    """Label/entry rows with an inline error label under each field."""

    def __init__(self, master: tk.Misc, t: Callable[..., str]):
        super().__init__(master)
        self.t = t
        self.vars: Dict[str, tk.StringVar] = {}
        self.widgets: Dict[str, tk.Widget] = {}
        self.error_labels: Dict[str, ttk.Label] = {}
        self.columnconfigure(1, weight=1)
        self._row = 0

    def add(self, name: str, label_key: str, value: str = "", *, choices: Optional[List[str]] = None) -> tk.StringVar:
        var = tk.StringVar(value=value)
        ttk.Label(self, text=f"{self.t(label_key)}:").grid(row=self._row, column=0, sticky="w", pady=2)
        if choices is not None:
            widget: tk.Widget = ttk.Combobox(self, textvariable=var, values=choices, state="readonly")
        else:
            widget = ttk.Entry(self, textvariable=var)
        widget.grid(row=self._row, column=1, sticky="ew", padx=(4, 0), pady=2)
        error = ttk.Label(self, text="", foreground="#c0392b")
        error.grid(row=self._row + 1, column=1, sticky="w")
        self.vars[name] = var
        self.widgets[name] = widget
        self.error_labels[name] = error
        self._row += 2
        return var

    def get(self, name: str) -> str:
        return self.vars[name].get()

    def show_errors(self, errors: Dict[str, str], names: Dict[str, str]) -> None:
        """``names`` maps wire field names to the grid's field names."""
        for label in self.error_labels.values():
            label.configure(text="")
        for wire_name, key in errors.items():
            field_name = names.get(wire_name, wire_name)
            if field_name in self.error_labels:
                self.error_labels[field_name].configure(text=self.t(key))

    def bind_cost(self, name: str) -> None:
        var = self.vars[name]
        state = {"value": var.get()}

        def _on_write(*_args: Any) -> None:
            typed = var.get()
            filtered = filter_cost_input(state["value"], typed)
            state["value"] = filtered
            if filtered != typed:
                var.set(filtered)

        def _on_blur(_event: tk.Event) -> None:
            normalized = normalize_cost(var.get())
            state["value"] = normalized
            var.set(normalized)

        var.trace_add("write", _on_write)
        self.widgets[name].bind("<FocusOut>", _on_blur)


GENERAL_FIELDS = {
    "title": "title",
    "author": "author",
    "editorial": "editorial",
    "edition": "edition",
    "categories": "categories",
    "coverType": "cover_type",
    "imageUrl": "image_url",
}
COPY_FIELDS = {
    "invoiceCode": "invoice_code",
    "code": "code",
    "location": "location",
    "cost": "cost",
    "dateAcquired": "date_acquired",
    "condition": "condition",
    "status": "status",
    "observations": "observations",
}


def add_general_fields(grid: FieldGrid, form: GeneralForm) -> None:
    grid.add("title", "title", form.title)
    grid.add("author", "author", form.author)
    grid.add("editorial", "editorial", form.editorial)
    grid.add("edition", "edition", form.edition)
    grid.add("categories", "categories", ", ".join(form.categories))
    grid.add("cover_type", "coverType", form.cover_type, choices=COVER_TYPES)
    grid.add("image_url", "imageUrl", form.image_url)


def add_copy_fields(grid: FieldGrid, form: CopyForm, *, with_status: bool = True) -> None:
    grid.add("invoice_code", "invoiceCode", form.invoice_code)
    grid.add("code", "code", form.code)
    grid.add("location", "location", form.location)
    grid.add("cost", "cost", form.cost)
    grid.bind_cost("cost")
    grid.add("date_acquired", "dateAcquired", form.date_acquired)
    grid.add("condition", "condition", form.condition, choices=CONDITIONS)
    if with_status:
        grid.add("status", "status", form.status, choices=COPY_STATUSES)
    grid.add("observations", "observations", form.observations)


def read_general(grid: FieldGrid) -> GeneralForm:
    return GeneralForm(
        title=grid.get("title"),
        author=grid.get("author"),
        editorial=grid.get("editorial"),
        edition=grid.get("edition"),
        categories=[item.strip() for item in grid.get("categories").split(",") if item.strip()],
        cover_type=grid.get("cover_type"),
        image_url=grid.get("image_url"),
    )


def read_copy(grid: FieldGrid) -> CopyForm:
    form = CopyForm(
        invoice_code=grid.get("invoice_code"),
        code=grid.get("code"),
        location=grid.get("location"),
        cost=grid.get("cost"),
        date_acquired=grid.get("date_acquired"),
        condition=grid.get("condition"),
        observations=grid.get("observations"),
    )
    if "status" in grid.vars:
        form.status = grid.get("status")
    return form


class ImagePreview(ttk.Frame):
    """Cover preview that stays empty while the URL is syntactically invalid."""

    def __init__(self, master: tk.Misc, t: Callable[..., str], size: Tuple[int, int] = (140, 200)):
        super().__init__(master)
        self.t = t
        self.size = size
        self.photo: Optional[tk.PhotoImage] = None
        self.current_url: Optional[str] = None
        self.image_label = ttk.Label(self, text="📖", anchor="center")
        self.image_label.pack(fill="both", expand=True)
        self.error_label = ttk.Label(self, text="", foreground="#c0392b")
        self.error_label.pack(fill="x")

    def show(self, url: Optional[str]) -> None:
        ok, error_key = validate_image_url(url)
        self.error_label.configure(text=self.t(error_key) if error_key else "")
        self.current_url = url if ok and url else None
        self.photo = None
        self.image_label.configure(image="", text="📖")
        if not self.current_url:
            return
        target = self.current_url
        run_in_background(
            self,
            lambda: fetch_and_cache_cover(target, max_edge=max(self.size)),
            lambda path: self._apply(target, path),
        )

    def _apply(self, url: str, path: Any) -> None:
        if url != self.current_url or not path:
            return
        photo = load_thumbnail(path, self.size)
        if photo is None:
            return
        self.photo = photo
        self.image_label.configure(image=photo, text="")


# --------------------------------------------------------------------------- #
# Catalog panel
# --------------------------------------------------------------------------- #
class CatalogFrame(ttk.Frame):
    columns = ("title", "author", "editorial", "location", "categories", "copies", "status", "condition", "company")

    def __init__(self, master: ttk.Notebook, controller: "MainApplication"):
        super().__init__(master, padding=12)
        self.controller = controller
        self.ctx = controller.ctx
        self.t = self.ctx.notifier.t
        self.query = self.ctx.catalog.query
        self.view = self.ctx.catalog.view
        self.cards_by_item: Dict[str, Any] = {}
        self._build_ui()
        self._listener = lambda _list: self.after(0, self.render)
        self.query.list.subscribe(self._listener)

    def destroy(self) -> None:
        self.query.list.unsubscribe(self._listener)
        super().destroy()

    def _build_ui(self) -> None:
        form = ttk.Frame(self)
        form.grid(row=0, column=0, sticky="ew")
        form.columnconfigure(1, weight=1)

        ttk.Label(form, text=f"{self.t('search')}:").grid(row=0, column=0, sticky="w", pady=2)
        self.search_var = tk.StringVar(value=self.query.search_term)
        ttk.Entry(form, textvariable=self.search_var).grid(row=0, column=1, columnspan=3, sticky="ew", padx=(4, 0))
        self.search_var.trace_add("write", lambda *_: self.query.set_search_term(self.search_var.get()))

        ttk.Label(form, text=f"{self.t('categories')}:").grid(row=1, column=0, sticky="w", pady=2)
        self.category_var = tk.StringVar()
        self.category_box = ttk.Combobox(form, textvariable=self.category_var, values=self.query.category_options)
        self.category_box.grid(row=1, column=1, sticky="ew", padx=(4, 0))
        ttk.Button(form, text="+", width=3, command=self._add_category).grid(row=1, column=2, padx=4)
        self.chips = ttk.Frame(form)
        self.chips.grid(row=2, column=1, columnspan=3, sticky="w")

        ttk.Label(form, text=f"{self.t('company')}:").grid(row=3, column=0, sticky="w", pady=2)
        self.company_var = tk.StringVar(value=self._company_label(self.query.selected_company))
        self.company_box = ttk.Combobox(form, textvariable=self.company_var, state="readonly")
        self.company_box.grid(row=3, column=1, sticky="ew", padx=(4, 0))
        self.company_box.bind("<<ComboboxSelected>>", lambda _e: self._set_company())

        body = ttk.Frame(self)
        body.grid(row=1, column=0, sticky="nsew", pady=(8, 0))
        self.rowconfigure(1, weight=1)
        self.columnconfigure(0, weight=1)
        body.columnconfigure(0, weight=1)
        body.rowconfigure(1, weight=1)

        self.message_label = ttk.Label(body, text="", anchor="center")
        self.message_label.grid(row=0, column=0, sticky="ew")

        self.tree = ttk.Treeview(body, columns=self.columns, show="headings", selectmode="browse")
        headings = {
            "title": "title",
            "author": "author",
            "editorial": "editorial",
            "location": "location",
            "categories": "categories",
            "copies": "copies",
            "status": "status",
            "condition": "condition",
            "company": "company",
        }
        for column, key in headings.items():
            self.tree.heading(column, text=self.t(key))
            self.tree.column(column, width=110, stretch=True)
        self.tree.grid(row=1, column=0, sticky="nsew")
        scroll = ttk.Scrollbar(body, orient="vertical", command=self.tree.yview)
        scroll.grid(row=1, column=1, sticky="ns")
        self.tree.configure(yscrollcommand=scroll.set)
        self.tree.bind("<Double-1>", lambda _e: self._open_selected())
        self.tree.bind("<Return>", lambda _e: self._open_selected())

        self.pager = ttk.Frame(self)
        self.pager.grid(row=2, column=0, sticky="w", pady=(8, 0))

        self._render_chips()
        self._render_company_options()

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------
    def _company_label(self, value: str) -> str:
        return self.t("allCompanies") if value == "all" else value

    def _render_company_options(self) -> None:
        self.company_box.configure(values=[self.t("allCompanies")] + self.query.company_options)
        self.company_var.set(self._company_label(self.query.selected_company))
        self.company_box.configure(state="disabled" if self.query.company_locked else "readonly")

    def _render_chips(self) -> None:
        for child in self.chips.winfo_children():
            child.destroy()
        for category in self.query.selected_categories:
            ttk.Button(
                self.chips,
                text=f"{category} ✕",
                command=lambda value=category: self._remove_category(value),
            ).pack(side="left", padx=(0, 4), pady=2)

    def _add_category(self) -> None:
        value = self.category_var.get()
        self.category_var.set("")
        run_in_background(self, lambda: self.query.add_category(value), lambda _r: self._render_chips())

    def _remove_category(self, value: str) -> None:
        run_in_background(self, lambda: self.query.remove_category(value), lambda _r: self._render_chips())

    def _set_company(self) -> None:
        label = self.company_var.get()
        value = "all" if label == self.t("allCompanies") else label
        run_in_background(self, lambda: self.query.set_company(value))

    def _go_to(self, page: int) -> None:
        run_in_background(self, lambda: self.query.set_page(page))

    def refresh_facets(self) -> None:
        def _done(ok: bool) -> None:
            if not ok:
                self.ctx.notifier.warning("facetsFetchError")
            self.category_box.configure(values=self.query.category_options)
            self._render_company_options()

        run_in_background(self, self.query.load_facets, _done)

    def refresh(self) -> None:
        self._render_company_options()
        run_in_background(self, self.query.refresh)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def render(self) -> None:
        state: ListViewState = self.view.render()
        self.tree.delete(*self.tree.get_children())
        self.cards_by_item.clear()
        self.message_label.configure(text=state.message)
        if state.kind == "results":
            for card in state.cards:
                item = self.tree.insert(
                    "",
                    "end",
                    values=(
                        truncate(card.title, 40),
                        truncate(card.author, 30),
                        card.edition_line,
                        card.location,
                        ", ".join(card.categories),
                        card.copies_count,
                        self.t("available") if card.available else self.t("unavailable"),
                        card.condition,
                        card.company or "",
                    ),
                )
                self.cards_by_item[item] = card
        self._render_pager(state)

    def _render_pager(self, state: ListViewState) -> None:
        for child in self.pager.winfo_children():
            child.destroy()
        busy = state.kind == "loading"
        ttk.Button(
            self.pager,
            text="◀",
            width=3,
            command=lambda: self._go_to(state.current_page - 1),
            state="disabled" if busy or state.current_page <= 1 else "normal",
        ).pack(side="left")
        for page in self.view.page_links():
            ttk.Button(
                self.pager,
                text=str(page),
                width=3,
                command=lambda value=page: self._go_to(value),
                state="disabled" if busy or page == state.current_page else "normal",
            ).pack(side="left", padx=1)
        ttk.Button(
            self.pager,
            text="▶",
            width=3,
            command=lambda: self._go_to(state.current_page + 1),
            state="disabled" if busy or state.current_page >= state.total_pages else "normal",
        ).pack(side="left")
        ttk.Label(
            self.pager, text=self.t("page", current=state.current_page, total=state.total_pages)
        ).pack(side="left", padx=8)

    def _open_selected(self) -> None:
        selection = self.tree.selection()
        if not selection:
            return
        card = self.cards_by_item.get(selection[0])
        if card is None:
            return
        self.controller.set_busy(True)

        def _done(opened: bool) -> None:
            self.controller.set_busy(False)
            if opened:
                BookDetailDialog(self.controller, self.ctx.catalog.details)

        run_in_background(self, lambda: self.view.open_card(card), _done)


# --------------------------------------------------------------------------- #
# Book detail / edit dialogs
# --------------------------------------------------------------------------- #
class BookDetailDialog(tk.Toplevel):
    copy_columns = ("invoice", "code", "location", "cost", "date", "condition", "status")

    def __init__(self, controller: "MainApplication", details: BookDetailSession):
        super().__init__(controller)
        self.controller = controller
        self.details = details
        self.t = controller.ctx.notifier.t
        self.copies_by_item: Dict[str, BookCopy] = {}
        self.geometry("860x560")
        self.transient(controller)
        self._build_ui()
        self.protocol("WM_DELETE_WINDOW", self._close)
        self._listener = lambda _session: self.after(0, self._refresh)
        details.subscribe(self._listener)
        self._refresh()

    def _build_ui(self) -> None:
        top = ttk.Frame(self, padding=12)
        top.pack(fill="x")
        self.preview = ImagePreview(top, self.t)
        self.preview.pack(side="left", padx=(0, 12))
        self.info_label = ttk.Label(top, text="", justify="left", anchor="nw")
        self.info_label.pack(side="left", fill="both", expand=True)

        middle = ttk.Frame(self, padding=(12, 0))
        middle.pack(fill="both", expand=True)
        middle.columnconfigure(0, weight=1)
        middle.rowconfigure(0, weight=1)
        self.copies = ttk.Treeview(middle, columns=self.copy_columns, show="headings", selectmode="browse")
        for column, key in zip(
            self.copy_columns,
            ("invoiceCode", "code", "location", "cost", "dateAcquired", "condition", "status"),
        ):
            self.copies.heading(column, text=self.t(key))
            self.copies.column(column, width=100)
        self.copies.grid(row=0, column=0, sticky="nsew")
        self.copy_pager = ttk.Frame(middle)
        self.copy_pager.grid(row=1, column=0, sticky="w", pady=4)

        actions = ttk.Frame(self, padding=12)
        actions.pack(fill="x")
        self.buttons = [
            ttk.Button(actions, text=self.t("generalInfo"), command=self._edit_general),
            ttk.Button(actions, text=f"✎ {self.t('copies')}", command=self._edit_copy),
            ttk.Button(actions, text=f"+ {self.t('copies')}", command=self._add_copy),
            ttk.Button(actions, text=f"🗑 {self.t('copies')}", command=self._delete_copy),
            ttk.Button(actions, text="🗑", command=self._delete_book),
        ]
        for button in self.buttons:
            button.pack(side="left", padx=(0, 6))
        ttk.Button(actions, text=self.t("close"), command=self._close).pack(side="right")

    def _refresh(self) -> None:
        if not self.winfo_exists():
            return
        book = self.details.selected_book
        if not self.details.is_open or book is None:
            self.destroy()
            return
        self.title(book.title)
        lines = [
            book.title,
            f"{self.t('author')}: {book.author}",
            f"{self.t('editorial')}: {book.editorial}",
            f"{self.t('edition')}: {book.edition}",
            f"{self.t('categories')}: {', '.join(book.categories)}",
            f"{self.t('coverType')}: {book.cover_type or ''}",
            self.t("copiesCount", count=book.copies_count),
        ]
        self.info_label.configure(text="\n".join(lines))
        if self.preview.current_url != (book.image_url or None):
            self.preview.show(book.image_url)

        self.copies.delete(*self.copies.get_children())
        self.copies_by_item.clear()
        for copy in self.details.visible_copies():
            item = self.copies.insert(
                "",
                "end",
                values=(
                    copy.invoice_code,
                    copy.code,
                    copy.location,
                    f"{copy.cost:.2f}",
                    date_only(copy.date_acquired),
                    copy.condition,
                    copy.status,
                ),
            )
            self.copies_by_item[item] = copy
        for child in self.copy_pager.winfo_children():
            child.destroy()
        if self.details.copy_pages > 1:
            for page in range(1, self.details.copy_pages + 1):
                ttk.Button(
                    self.copy_pager,
                    text=str(page),
                    width=3,
                    command=lambda value=page: self.details.set_copy_page(value),
                    state="disabled" if page == self.details.copy_page else "normal",
                ).pack(side="left", padx=1)
        for button in self.buttons:
            button.configure(state="disabled" if self.details.busy else "normal")

    def _selected_copy(self) -> Optional[BookCopy]:
        selection = self.copies.selection()
        return self.copies_by_item.get(selection[0]) if selection else None

    def _run(self, work: Callable[[], Any]) -> None:
        for button in self.buttons:
            button.configure(state="disabled")
        run_in_background(self, work, lambda _r: self._refresh() if self.winfo_exists() else None)

    def _edit_general(self) -> None:
        book = self.details.selected_book
        if book is not None:
            GeneralEditDialog(self, self.details, book)

    def _edit_copy(self) -> None:
        copy = self._selected_copy()
        if copy is not None:
            CopyEditDialog(self, self.details, copy)

    def _add_copy(self) -> None:
        if self.details.selected_book is not None:
            CopyEditDialog(self, self.details, None)

    def _delete_copy(self) -> None:
        copy = self._selected_copy()
        if copy is None:
            return
        self.details.request_delete_copy(copy.id)
        if messagebox.askyesno(self.t("copies"), self.t("confirmDeleteCopy"), parent=self):
            self._run(self.details.confirm_delete)
        else:
            self.details.cancel_delete()

    def _delete_book(self) -> None:
        book = self.details.selected_book
        if book is None:
            return
        self.details.request_delete_book(book.id)
        if messagebox.askyesno(book.title, self.t("confirmDeleteBook"), parent=self):
            self._run(self.details.confirm_delete)
        else:
            self.details.cancel_delete()

    def _close(self) -> None:
        self.details.unsubscribe(self._listener)
        self.details.close()
        if self.winfo_exists():
            self.destroy()

    def destroy(self) -> None:
        self.details.unsubscribe(self._listener)
        super().destroy()


class GeneralEditDialog(tk.Toplevel):
    def __init__(self, master: BookDetailDialog, details: BookDetailSession, book: Book):
        super().__init__(master)
        self.details = details
        self.t = master.t
        self.title(self.t("generalInfo"))
        self.transient(master)
        body = ttk.Frame(self, padding=12)
        body.pack(fill="both", expand=True)
        self.grid_fields = FieldGrid(body, self.t)
        self.grid_fields.pack(side="left", fill="both", expand=True)
        add_general_fields(self.grid_fields, GeneralForm.from_book(book))
        self.preview = ImagePreview(body, self.t)
        self.preview.pack(side="left", padx=(12, 0))
        self.preview.show(book.image_url)
        self.grid_fields.vars["image_url"].trace_add(
            "write", lambda *_: self.preview.show(self.grid_fields.get("image_url"))
        )
        self.save_button = ttk.Button(self, text="✔", command=self._save)
        self.save_button.pack(pady=(0, 12))

    def _save(self) -> None:
        form = read_general(self.grid_fields)
        self.grid_fields.show_errors(form.errors(), GENERAL_FIELDS)
        self.save_button.configure(state="disabled")

        def _done(ok: bool) -> None:
            if not self.winfo_exists():
                return
            self.save_button.configure(state="normal")
            if ok:
                self.destroy()
            else:
                self.grid_fields.show_errors(self.details.form_errors, GENERAL_FIELDS)

        run_in_background(self, lambda: self.details.update_general(form), _done)


class CopyEditDialog(tk.Toplevel):
    """Edits one copy, or adds a copy of the open book when ``copy`` is None."""

    def __init__(self, master: BookDetailDialog, details: BookDetailSession, copy: Optional[BookCopy]):
        super().__init__(master)
        self.details = details
        self.copy = copy
        self.t = master.t
        self.title(self.t("copies"))
        self.transient(master)
        self.grid_fields = FieldGrid(self, self.t)
        self.grid_fields.pack(fill="both", expand=True, padx=12, pady=12)
        form = CopyForm.from_copy(copy) if copy else CopyForm()
        add_copy_fields(self.grid_fields, form, with_status=copy is not None)
        self.save_button = ttk.Button(self, text="✔", command=self._save)
        self.save_button.pack(pady=(0, 12))

    def _save(self) -> None:
        form = read_copy(self.grid_fields)
        self.grid_fields.show_errors(form.errors(), COPY_FIELDS)
        self.save_button.configure(state="disabled")
        if self.copy is not None:
            copy_id = self.copy.id
            work: Callable[[], bool] = lambda: self.details.update_copy(copy_id, form)
        else:
            work = lambda: self.details.add_copy(form)

        def _done(ok: bool) -> None:
            if not self.winfo_exists():
                return
            self.save_button.configure(state="normal")
            if ok:
                self.destroy()

        run_in_background(self, work, _done)


# --------------------------------------------------------------------------- #
# Create panel
# --------------------------------------------------------------------------- #
class CreateBookFrame(ttk.Frame):
    def __init__(self, master: ttk.Notebook, controller: "MainApplication"):
        super().__init__(master, padding=12)
        self.controller = controller
        self.ctx = controller.ctx
        self.t = self.ctx.notifier.t
        self._build_ui()

    def _build_ui(self) -> None:
        columns = ttk.Frame(self)
        columns.pack(fill="both", expand=True)
        self.general = FieldGrid(columns, self.t)
        self.general.pack(side="left", fill="both", expand=True)
        add_general_fields(self.general, GeneralForm())
        self.copy = FieldGrid(columns, self.t)
        self.copy.pack(side="left", fill="both", expand=True, padx=(12, 0))
        add_copy_fields(self.copy, CopyForm(), with_status=False)
        self.preview = ImagePreview(columns, self.t)
        self.preview.pack(side="left", padx=(12, 0))
        self.general.vars["image_url"].trace_add("write", lambda *_: self.preview.show(self.general.get("image_url")))
        self.submit_button = ttk.Button(self, text=self.t("createBook"), command=self._submit)
        self.submit_button.pack(pady=12)

    def _submit(self) -> None:
        form = BookForm(general=read_general(self.general), copy=read_copy(self.copy))
        errors = form.errors()
        self.general.show_errors(errors, GENERAL_FIELDS)
        self.copy.show_errors(errors, COPY_FIELDS)
        if form.blocking_errors():
            self.ctx.notifier.error("fixFormErrors")
            return
        self.submit_button.configure(state="disabled")

        def _done(book: Optional[Book]) -> None:
            self.submit_button.configure(state="normal")
            if book is not None:
                for grid in (self.general, self.copy):
                    for name, var in grid.vars.items():
                        if name not in ("cover_type", "condition", "date_acquired"):
                            var.set("")
                self.controller.catalog_frame.refresh()

        run_in_background(self, lambda: create_book(self.ctx.client, self.ctx.notifier, form), _done)


# --------------------------------------------------------------------------- #
# Circulation panel
# --------------------------------------------------------------------------- #
class CirculationFrame(ttk.Frame):
    def __init__(self, master: ttk.Notebook, controller: "MainApplication"):
        super().__init__(master, padding=12)
        self.controller = controller
        self.ctx = controller.ctx
        self.t = self.ctx.notifier.t
        self.session = self.ctx.circulation
        self.lend_rows: Dict[str, Book] = {}
        self.active_rows: Dict[str, BorrowRecord] = {}
        self.copy_choices: List[BookCopy] = []
        self._build_ui()
        self._listeners = [
            (self.session.lend.list, lambda _l: self.after(0, self._render_lend)),
            (self.session.active.list, lambda _l: self.after(0, self._render_active)),
            (self.session.history.list, lambda _l: self.after(0, self._render_history)),
        ]
        for remote, listener in self._listeners:
            remote.subscribe(listener)

    def destroy(self) -> None:
        for remote, listener in self._listeners:
            remote.unsubscribe(listener)
        super().destroy()

    def _build_ui(self) -> None:
        tabs = ttk.Notebook(self)
        tabs.pack(fill="both", expand=True)
        tabs.add(self._build_lend(tabs), text=self.t("lend"))
        tabs.add(self._build_return(tabs), text=self.t("returns"))
        tabs.add(self._build_history(tabs), text=self.t("history"))

    def _search_entry(self, master: tk.Misc, query: Any) -> None:
        var = tk.StringVar()
        row = ttk.Frame(master)
        row.pack(fill="x")
        ttk.Label(row, text=f"{self.t('search')}:").pack(side="left")
        ttk.Entry(row, textvariable=var).pack(side="left", fill="x", expand=True, padx=(4, 0))
        var.trace_add("write", lambda *_: query.set_search_term(var.get()))

    def _tree(self, master: tk.Misc, columns: Dict[str, str]) -> ttk.Treeview:
        tree = ttk.Treeview(master, columns=tuple(columns), show="headings", selectmode="browse", height=8)
        for column, key in columns.items():
            tree.heading(column, text=self.t(key))
            tree.column(column, width=120)
        tree.pack(fill="both", expand=True, pady=6)
        return tree

    # Lend -------------------------------------------------------------
    def _build_lend(self, master: ttk.Notebook) -> ttk.Frame:
        frame = ttk.Frame(master, padding=8)
        self._search_entry(frame, self.session.lend)
        self.lend_tree = self._tree(frame, {"title": "title", "author": "author", "copies": "copies"})
        self.lend_tree.bind("<<TreeviewSelect>>", lambda _e: self._load_copies())
        self.lend_form = FieldGrid(frame, self.t)
        self.lend_form.pack(fill="x")
        self.lend_form.add("copy", "code", choices=[])
        borrower = self.lend_form.add("borrower_name", "borrowerName")
        self.lend_form.add("borrow_date", "borrowDate", BorrowForm().borrow_date)
        self.lend_form.add("expected_return_date", "expectedReturnDate")
        self.lend_form.add("comments", "comments")
        self.suggestions = tk.Listbox(frame, height=4)
        self.suggestions.pack(fill="x")
        self.suggestions.bind("<<ListboxSelect>>", lambda _e: self._pick_suggestion())
        borrower.trace_add("write", lambda *_: self._suggest(borrower.get()))
        self.borrow_button = ttk.Button(frame, text="✔", command=self._borrow)
        self.borrow_button.pack(pady=6)
        return frame

    def _render_lend(self) -> None:
        remote = self.session.lend.list
        self.lend_tree.delete(*self.lend_tree.get_children())
        self.lend_rows.clear()
        for book in remote.rows:
            item = self.lend_tree.insert("", "end", values=(book.title, book.author, book.copies_count))
            self.lend_rows[item] = book

    def _load_copies(self) -> None:
        selection = self.lend_tree.selection()
        book = self.lend_rows.get(selection[0]) if selection else None
        if book is None:
            return

        def _done(copies: List[BookCopy]) -> None:
            self.copy_choices = copies
            labels = [f"{copy.code or copy.invoice_code} · {copy.location}" for copy in copies]
            self.lend_form.widgets["copy"].configure(values=labels)
            self.lend_form.vars["copy"].set(labels[0] if labels else "")

        run_in_background(self, lambda: self.session.available_copies(book), _done)

    def _suggest(self, prefix: str) -> None:
        self.suggestions.delete(0, "end")
        for name in self.session.borrower_suggestions(prefix):
            self.suggestions.insert("end", name)

    def _pick_suggestion(self) -> None:
        selection = self.suggestions.curselection()
        if selection:
            self.lend_form.vars["borrower_name"].set(self.suggestions.get(selection[0]))

    def _borrow(self) -> None:
        selection = self.lend_tree.selection()
        book = self.lend_rows.get(selection[0]) if selection else None
        labels = list(self.lend_form.widgets["copy"].cget("values") or ())
        label = self.lend_form.get("copy")
        copy = self.copy_choices[labels.index(label)] if label in labels else None
        form = BorrowForm(
            book_id=book.id if book else "",
            copy_id=copy.id if copy else "",
            borrower_name=self.lend_form.get("borrower_name"),
            borrow_date=self.lend_form.get("borrow_date"),
            expected_return_date=self.lend_form.get("expected_return_date"),
            comments=self.lend_form.get("comments"),
        )
        self.lend_form.show_errors(form.errors(), {"copy": "copy", "borrowerName": "borrower_name", "borrowDate": "borrow_date", "expectedReturnDate": "expected_return_date"})
        self.borrow_button.configure(state="disabled")
        run_in_background(
            self, lambda: self.session.borrow(form), lambda _r: self.borrow_button.configure(state="normal")
        )

    # Return -----------------------------------------------------------
    def _build_return(self, master: ttk.Notebook) -> ttk.Frame:
        frame = ttk.Frame(master, padding=8)
        self._search_entry(frame, self.session.active)
        self.active_tree = self._tree(
            frame,
            {"title": "title", "borrower": "borrowerName", "borrowed": "borrowDate", "due": "expectedReturnDate", "status": "status"},
        )
        self.active_message = ttk.Label(frame, text="")
        self.active_message.pack(fill="x")
        self.return_comments = tk.StringVar()
        row = ttk.Frame(frame)
        row.pack(fill="x")
        ttk.Label(row, text=f"{self.t('comments')}:").pack(side="left")
        ttk.Entry(row, textvariable=self.return_comments).pack(side="left", fill="x", expand=True, padx=4)
        self.return_button = ttk.Button(row, text="✔", command=self._return)
        self.return_button.pack(side="left")
        return frame

    def _render_active(self) -> None:
        remote = self.session.active.list
        self.active_tree.delete(*self.active_tree.get_children())
        self.active_rows.clear()
        if remote.error:
            self.active_message.configure(text=self.t("loansFetchError"))
        elif remote.status == "ready" and not remote.rows:
            self.active_message.configure(text=self.t("noLoansFound"))
        else:
            self.active_message.configure(text="")
        for record in remote.rows:
            item = self.active_tree.insert(
                "",
                "end",
                values=(
                    record.book_title,
                    record.borrower_name,
                    date_only(record.borrow_date),
                    date_only(record.expected_return_date),
                    record.status,
                ),
            )
            self.active_rows[item] = record

    def _return(self) -> None:
        selection = self.active_tree.selection()
        record = self.active_rows.get(selection[0]) if selection else None
        if record is None:
            return
        comments = self.return_comments.get()
        self.return_button.configure(state="disabled")

        def _done(ok: bool) -> None:
            self.return_button.configure(state="normal")
            if ok:
                self.return_comments.set("")

        run_in_background(self, lambda: self.session.return_loan(record.id, comments), _done)

    # History ----------------------------------------------------------
    def _build_history(self, master: ttk.Notebook) -> ttk.Frame:
        frame = ttk.Frame(master, padding=8)
        self._search_entry(frame, self.session.history)
        row = ttk.Frame(frame)
        row.pack(fill="x", pady=4)
        ttk.Label(row, text=f"{self.t('status')}:").pack(side="left")
        self.status_var = tk.StringVar()
        box = ttk.Combobox(row, textvariable=self.status_var, values=[""] + BORROW_STATUSES, state="readonly")
        box.pack(side="left", padx=4)
        box.bind(
            "<<ComboboxSelected>>",
            lambda _e: run_in_background(self, lambda: self.session.history.set_status(self.status_var.get())),
        )
        self.history_tree = self._tree(
            frame,
            {"title": "title", "borrower": "borrowerName", "borrowed": "borrowDate", "returned": "returnDate", "status": "status"},
        )
        pager = ttk.Frame(frame)
        pager.pack(fill="x")
        ttk.Button(pager, text="◀", width=3, command=lambda: self._history_page(-1)).pack(side="left")
        ttk.Button(pager, text="▶", width=3, command=lambda: self._history_page(1)).pack(side="left")
        self.history_page_label = ttk.Label(pager, text="")
        self.history_page_label.pack(side="left", padx=8)
        return frame

    def _history_page(self, step: int) -> None:
        query = self.session.history
        run_in_background(self, lambda: query.set_page(query.current_page + step))

    def _render_history(self) -> None:
        query = self.session.history
        self.history_tree.delete(*self.history_tree.get_children())
        for record in query.list.rows:
            self.history_tree.insert(
                "",
                "end",
                values=(
                    record.book_title,
                    record.borrower_name,
                    date_only(record.borrow_date),
                    date_only(record.return_date or record.expected_return_date),
                    record.status,
                ),
            )
        self.history_page_label.configure(
            text=self.t("page", current=query.current_page, total=query.list.total_pages)
        )

    def refresh(self) -> None:
        def _work() -> None:
            self.session.load_borrower_names()
            self.session.lend.refresh()
            self.session.active.refresh()
            self.session.history.refresh()

        run_in_background(self, _work)


# --------------------------------------------------------------------------- #
# Account dialogs
# --------------------------------------------------------------------------- #
class LoginDialog(tk.Toplevel):
    def __init__(self, controller: "MainApplication"):
        super().__init__(controller)
        self.controller = controller
        self.t = controller.ctx.notifier.t
        self.title(self.t("login"))
        self.transient(controller)
        self.resizable(False, False)
        self.fields = FieldGrid(self, self.t)
        self.fields.pack(fill="both", padx=12, pady=12)
        self.fields.add("email", "email")
        self.fields.add("password", "password")
        self.fields.widgets["password"].configure(show="•")
        self.button = ttk.Button(self, text=self.t("login"), command=self._submit)
        self.button.pack(pady=(0, 12))

    def _submit(self) -> None:
        email, password = self.fields.get("email"), self.fields.get("password")
        self.button.configure(state="disabled")

        def _done(ok: bool) -> None:
            if ok:
                self.destroy()
                self.controller.on_identity_changed()
            elif self.winfo_exists():
                self.button.configure(state="normal")

        run_in_background(self, lambda: self.controller.ctx.auth.login(email, password), _done)


class SignupDialog(tk.Toplevel):
    def __init__(self, controller: "MainApplication"):
        super().__init__(controller)
        self.controller = controller
        self.t = controller.ctx.notifier.t
        self.title(self.t("signup"))
        self.transient(controller)
        self.resizable(False, False)
        self.fields = FieldGrid(self, self.t)
        self.fields.pack(fill="both", padx=12, pady=12)
        self.fields.add("username", "username")
        self.fields.add("email", "email")
        self.fields.add("password", "password")
        self.fields.add("confirm", "confirmPassword")
        for name in ("password", "confirm"):
            self.fields.widgets[name].configure(show="•")
        self.button = ttk.Button(self, text=self.t("signup"), command=self._submit)
        self.button.pack(pady=(0, 12))

    def _submit(self) -> None:
        values = [self.fields.get(name) for name in ("username", "email", "password", "confirm")]
        self.button.configure(state="disabled")

        def _done(ok: bool) -> None:
            if ok:
                self.destroy()
                LoginDialog(self.controller)
            elif self.winfo_exists():
                self.button.configure(state="normal")

        run_in_background(self, lambda: self.controller.ctx.auth.signup(*values), _done)


# --------------------------------------------------------------------------- #
# Main window
# --------------------------------------------------------------------------- #
class MainApplication(tk.Tk):
    status_colors = {SUCCESS: "#1e8449", ERROR: "#c0392b", WARNING: "#b9770e"}

    def __init__(self, ctx: Optional[AppContext] = None):
        super().__init__()
        self.ctx = ctx or build_context()
        self.geometry("1280x820")
        self.minsize(1100, 720)
        self.status_var = tk.StringVar(value="")
        self.content: Optional[ttk.Frame] = None
        self.ctx.notifier.subscribe(lambda toast: self.after(0, lambda: self.show_toast(toast)))
        self.ctx.notifier.dismiss_all()

        self.status_bar = ttk.Label(self, textvariable=self.status_var, anchor="w", padding=(8, 4))
        self.status_bar.pack(side="bottom", fill="x")
        self._build_ui()
        self.protocol("WM_DELETE_WINDOW", self.on_close)

    def _build_ui(self) -> None:
        t = self.ctx.notifier.t
        self.title(t("appTitle"))
        if self.content is not None:
            self.content.destroy()
        self.content = ttk.Frame(self)
        self.content.pack(fill="both", expand=True)
        self._build_menu()

        notebook = ttk.Notebook(self.content)
        notebook.pack(fill="both", expand=True)
        notebook.bind("<<NotebookTabChanged>>", lambda _e: self._on_navigate())

        self.catalog_frame = CatalogFrame(notebook, self)
        notebook.add(self.catalog_frame, text=t("catalog"))
        self.create_frame: Optional[CreateBookFrame] = None
        self.circulation_frame: Optional[CirculationFrame] = None
        if self.ctx.identity.is_authenticated():
            self.create_frame = CreateBookFrame(notebook, self)
            notebook.add(self.create_frame, text=t("createBook"))
            self.circulation_frame = CirculationFrame(notebook, self)
            notebook.add(self.circulation_frame, text=t("circulation"))
            self.circulation_frame.refresh()

        self.catalog_frame.refresh_facets()
        self.catalog_frame.refresh()

    def _build_menu(self) -> None:
        t = self.ctx.notifier.t
        menubar = tk.Menu(self)
        account = tk.Menu(menubar, tearoff=False)
        if self.ctx.identity.is_authenticated():
            account.add_command(label=t("logout"), command=self._logout)
        else:
            account.add_command(label=t("login"), command=lambda: LoginDialog(self))
            account.add_command(label=t("signup"), command=lambda: SignupDialog(self))
        menubar.add_cascade(label=self.ctx.identity.user_name() or t("login"), menu=account)
        language = tk.Menu(menubar, tearoff=False)
        for locale in SUPPORTED_LOCALES:
            language.add_command(label=locale.upper(), command=lambda value=locale: self.set_locale(value))
        menubar.add_cascade(label="🌐", menu=language)
        self.configure(menu=menubar)

    # ------------------------------------------------------------------
    def _on_navigate(self) -> None:
        self.ctx.notifier.dismiss_all()
        self.status_var.set("")

    def show_toast(self, toast: Toast) -> None:
        self.status_var.set(toast.message)
        self.status_bar.configure(foreground=self.status_colors.get(toast.level, ""))

    def set_busy(self, busy: bool) -> None:
        self.configure(cursor="watch" if busy else "")

    def set_locale(self, locale: str) -> None:
        self.ctx.set_locale(locale)
        self._build_ui()

    def on_identity_changed(self) -> None:
        self.ctx.catalog.query.sync_identity(fetch=False)
        self._build_ui()

    def _logout(self) -> None:
        self.ctx.auth.logout()
        self.on_identity_changed()

    def on_close(self) -> None:
        try:
            self.ctx.catalog.query.list.cancel_pending()
            self.ctx.client.session.close()
        finally:
            self.destroy()


if __name__ == "__main__":
    app = MainApplication()
    app.mainloop()
