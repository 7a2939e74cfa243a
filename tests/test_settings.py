from __future__ import annotations

from pathlib import Path

from context import build_context
from settings import Settings

from conftest import FakeSession, page


def test_settings_read_prefixed_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LIBRARY_BACKEND_URI", "https://library.example.org/")
    monkeypatch.setenv("LIBRARY_SEARCH_DEBOUNCE", "0.5")
    monkeypatch.setenv("LIBRARY_APP_DIR", str(tmp_path))

    settings = Settings()

    assert settings.backend_uri == "https://library.example.org"
    assert settings.search_debounce == 0.5
    assert settings.state_path == tmp_path / "state.json"
    assert settings.covers_dir == tmp_path / "covers"


def test_context_wires_shared_services(tmp_path: Path) -> None:
    settings = Settings(backend_uri="http://backend.test", app_dir=tmp_path, search_debounce=0)
    session = FakeSession()
    session.add("GET", "/api/books", page())

    ctx = build_context(settings, session=session)
    ctx.set_locale("en")
    ctx.catalog.query.refresh()

    assert ctx.notifier.locale == "en"
    assert ctx.state.get("locale") == "en"
    assert ctx.catalog.view.details is ctx.catalog.details
    assert session.calls_to("GET", "/api/books")[0].params["company"] == "all"
    assert build_context(settings, session=session).notifier.locale == "en"
