from getpass import getpass
from typing import List, Optional

from catalog import describe_card
from context import AppContext, build_context
from details import COPIES_PER_PAGE
from models import BookCopy, date_only
from notices import Toast
from translations import SUPPORTED_LOCALES


def print_toast(toast: Toast) -> None:
    print(f"[{toast.level}] {toast.message}")


def print_copies(copies: List[BookCopy], offset: int) -> None:
    """Print one page of a book's copies, numbered from ``offset + 1``."""
    if not copies:
        print("   (no copies)")
        return
    for idx, copy in enumerate(copies, start=offset + 1):
        print(
            f"   {idx}. {copy.code or copy.invoice_code or copy.id}"
            f" | {copy.location} | {copy.cost:.2f} | {date_only(copy.date_acquired)}"
            f" | {copy.condition} | {copy.status}"
        )


def parse_index(response: str, command: str) -> Optional[int]:
    remainder = response[len(command):].strip()
    return int(remainder) if remainder.isdigit() else None


def confirm(prompt: str) -> bool:
    return input(f"{prompt} (y/n): ").strip().lower() in {"y", "yes"}


def render_results(ctx: AppContext) -> None:
    view = ctx.catalog.view
    state = view.render()
    query = ctx.catalog.query
    filters = [f"search='{query.search_term}'", f"company={query.selected_company}"]
    if query.selected_categories:
        filters.append(f"categories={', '.join(query.selected_categories)}")
    print("\n" + " ".join(filters))
    if state.kind != "results":
        print(state.message)
    for idx, card in enumerate(state.cards, start=1):
        print(describe_card(card, idx, ctx.notifier.locale))
    print(ctx.notifier.t("page", current=state.current_page, total=state.total_pages))


def details_session(ctx: AppContext) -> None:
    """Browse and edit the copies of the book that was just opened."""
    details = ctx.catalog.details
    while details.is_open and details.selected_book is not None:
        book = details.selected_book
        print(f"\n{book.title} | {book.author} | {ctx.notifier.t('copiesCount', count=book.copies_count)}")
        offset = (details.copy_page - 1) * COPIES_PER_PAGE
        print_copies(details.visible_copies(), offset)
        print(f"   copies page {details.copy_page}/{details.copy_pages}")
        response = input(
            "'dc <number>' to delete a copy, 'db' to delete the book, 'n'/'p' for copy pages, 'b' to go back: "
        ).strip()
        normalized = response.lower()

        if normalized in {"b", "back"}:
            details.close()
            return
        if normalized in {"n", "next"}:
            details.set_copy_page(details.copy_page + 1)
            continue
        if normalized in {"p", "prev"}:
            details.set_copy_page(details.copy_page - 1)
            continue
        if normalized == "db":
            details.request_delete_book(book.id)
            if confirm(ctx.notifier.t("confirmDeleteBook")):
                details.confirm_delete()
            else:
                details.cancel_delete()
            continue
        if normalized.startswith("dc"):
            index = parse_index(normalized, "dc")
            if index is None or not 1 <= index <= len(book.copies):
                print("Use the format 'dc <number>' with a listed copy number.")
                continue
            copy = book.copies[index - 1]
            details.request_delete_copy(copy.id)
            if confirm(ctx.notifier.t("confirmDeleteCopy")):
                details.confirm_delete()
            else:
                details.cancel_delete()
            continue
        print("Please enter a valid option.")


def login(ctx: AppContext) -> None:
    email = input("Email: ").strip()
    password = getpass("Password: ")
    if ctx.auth.login(email, password):
        ctx.catalog.query.sync_identity()


def interactive_session(ctx: Optional[AppContext] = None) -> None:
    """Run the interactive catalog browsing session."""
    ctx = ctx or build_context()
    ctx.notifier.subscribe(print_toast)
    query = ctx.catalog.query
    if not query.load_facets():
        ctx.notifier.warning("facetsFetchError")
    query.refresh()

    print("\nBrowse the library catalog. Type 'quit' at any prompt to exit.")
    help_text = (
        "Enter a number to open a book, 's <text>' to search, '+c <category>' / '-c <category>',\n"
        "'company <name|all>', 'n'/'p'/'g <page>', 'login', 'logout', 'lang <en|es>': "
    )

    while True:
        render_results(ctx)
        response = input(help_text).strip()
        normalized = response.lower()

        if normalized in {"quit", "q"}:
            break
        if normalized.startswith("s ") or normalized == "s":
            query.set_search_term(response[1:].strip())
            query.list.flush()
            continue
        if normalized.startswith("+c"):
            query.add_category(response[2:].strip())
            continue
        if normalized.startswith("-c"):
            query.remove_category(response[2:].strip())
            continue
        if normalized.startswith("company"):
            if not query.set_company(response[len("company"):].strip()) and query.company_locked:
                print("The company filter is fixed while signed in.")
            continue
        if normalized in {"n", "next"}:
            query.set_page(query.current_page + 1)
            continue
        if normalized in {"p", "prev"}:
            query.set_page(query.current_page - 1)
            continue
        if normalized.startswith("g"):
            page = parse_index(normalized, "g")
            if page is None:
                print("Use the format 'g <page>'.")
            else:
                query.set_page(page)
            continue
        if normalized == "login":
            login(ctx)
            continue
        if normalized == "logout":
            ctx.auth.logout()
            query.sync_identity()
            continue
        if normalized.startswith("lang"):
            locale = normalized[len("lang"):].strip()
            if locale in SUPPORTED_LOCALES:
                ctx.set_locale(locale)
            else:
                print(f"Supported languages: {', '.join(SUPPORTED_LOCALES)}")
            continue
        try:
            selection = int(response)
        except ValueError:
            print("Please enter a valid option.")
            continue
        cards = ctx.catalog.view.render().cards
        if not 1 <= selection <= len(cards):
            print("That selection is out of range. Please try again.")
            continue
        if ctx.catalog.view.open_card(cards[selection - 1]):
            details_session(ctx)

    query.list.cancel_pending()
    print("\nSession complete.")


if __name__ == "__main__":
    interactive_session()
