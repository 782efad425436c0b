import io
import json

import pytest

from navmarks.api import create_app
from navmarks.config import Settings
from navmarks.store import MemoryStore, StoreError


def _client(store=None, **overrides):
    cfg = Settings()
    for k, v in overrides.items():
        setattr(cfg, k, v)
    app = create_app(cfg, store=store if store is not None else MemoryStore())
    app.config["TESTING"] = True
    return app.test_client()


def test_list_is_empty_array_initially():
    r = _client().get("/api/sites")
    assert r.status_code == 200
    assert r.get_json() == []


def test_upload_import_then_list(sample_html):
    store = MemoryStore()
    client = _client(store)

    r = client.post(
        "/api/import",
        data={"file": (io.BytesIO(sample_html.encode("utf-8")), "bookmarks.html")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 200
    assert r.get_json() == {"success": True, "imported": 3, "skipped": 0}

    sites = client.get("/api/sites").get_json()
    assert [s["category"] for s in sites] == ["", "", "Dev"]
    assert all(s["id"] and s["createdAt"] for s in sites)


def test_inline_html_import_counts_skips(sample_html):
    client = _client()
    client.post("/api/import", json={"html": sample_html})
    r = client.post("/api/import", json={"html": sample_html})
    assert r.get_json() == {"success": True, "imported": 0, "skipped": 3}


@pytest.mark.parametrize("kwargs", [{"json": {}}, {"json": {"html": "  "}}, {"data": "nope"}])
def test_import_without_content_is_rejected(kwargs):
    store = MemoryStore()
    r = _client(store).post("/api/import", **kwargs)
    assert r.status_code == 400
    assert "error" in r.get_json()
    assert store.data == {}


def test_create_update_delete_site():
    client = _client()
    r = client.post("/api/sites", json={"name": "Example", "url": "example.com"})
    assert r.status_code == 201
    site = r.get_json()
    assert site["url"] == "https://example.com"

    r = client.put("/api/sites", json={**site, "name": "Renamed"})
    assert r.status_code == 200
    assert [s["name"] for s in r.get_json()] == ["Renamed"]

    r = client.put("/api/sites", json={**site, "id": "missing"})
    assert r.status_code == 404

    r = client.delete("/api/sites", json={"ids": [site["id"]]})
    assert r.get_json() == {"success": True, "deleted": 1}
    assert client.get("/api/sites").get_json() == []


def test_create_with_bad_payload_is_400():
    r = _client().post("/api/sites", json={"name": "No url"})
    assert r.status_code == 400


def test_category_only_post_adds_category_and_meta_lists_it():
    client = _client()
    r = client.post("/api/sites", json={"category": "Reading"})
    assert r.status_code == 201
    assert r.get_json() == {"categories": ["Reading"]}

    meta = client.get("/api/sites?meta=1").get_json()
    assert meta == {"sites": [], "categories": ["Reading"]}


def test_edit_password_gates_mutations_only():
    client = _client(edit_password="s3cret")
    assert client.get("/api/sites").status_code == 200

    r = client.post("/api/sites", json={"name": "A", "url": "https://a"})
    assert r.status_code == 403

    r = client.post("/api/sites", json={"name": "A", "url": "https://a"}, headers={"X-Edit-Password": "wrong"})
    assert r.status_code == 403

    r = client.post("/api/sites", json={"name": "A", "url": "https://a"}, headers={"X-Edit-Password": "s3cret"})
    assert r.status_code == 201


def test_store_failure_is_500(sample_html):
    class _Broken(MemoryStore):
        def get(self, key):
            raise StoreError("backend unavailable")

    r = _client(_Broken()).post("/api/import", json={"html": sample_html})
    assert r.status_code == 500
    assert r.get_json() == {"error": "backend unavailable"}


def test_unsupported_method_is_405():
    r = _client().patch("/api/sites", json={})
    assert r.status_code == 405


def test_unicode_is_stored_unescaped():
    store = MemoryStore()
    _client(store).post("/api/sites", json={"name": "知乎", "url": "zhihu.com", "category": "社区"})
    assert "知乎" in store.data["all_sites"]
    assert json.loads(store.data["all_sites"])[0]["category"] == "社区"


def _record_fetches(monkeypatch, html):
    import navmarks.sites as sites

    calls = []

    def fake_fetch(url, **kwargs):
        calls.append((url, kwargs.get("follow_redirects")))
        return html

    monkeypatch.setattr(sites, "fetch_html", fake_fetch)
    return calls


def test_url_import_is_refused_without_a_base(monkeypatch, sample_html):
    calls = _record_fetches(monkeypatch, sample_html)
    r = _client().post("/api/import", json={"url": "http://127.0.0.1:8080/admin"})
    assert r.status_code == 400
    assert calls == []


def test_url_import_resolves_relative_path_under_base(monkeypatch, sample_html):
    calls = _record_fetches(monkeypatch, sample_html)
    client = _client(import_url_base="https://nav.example")

    r = client.post("/api/import", json={"url": "/default-bookmarks.html"})

    assert r.status_code == 200
    assert r.get_json()["imported"] == 3
    assert calls == [("https://nav.example/default-bookmarks.html", False)]


@pytest.mark.parametrize(
    "url",
    [
        "http://169.254.169.254/latest/meta-data/",
        "https://nav.example.evil.test/bookmarks.html",
        "//internal.local/bookmarks.html",
    ],
)
def test_url_import_outside_base_is_refused(monkeypatch, sample_html, url):
    calls = _record_fetches(monkeypatch, sample_html)
    r = _client(import_url_base="https://nav.example/").post("/api/import", json={"url": url})
    assert r.status_code == 400
    assert calls == []


def test_non_ascii_edit_password_is_accepted():
    client = _client(edit_password="虎窝密码")
    # Servers pass raw header bytes through as latin-1 text.
    wire_value = "虎窝密码".encode("utf-8").decode("latin-1")

    r = client.post("/api/sites", json={"name": "A", "url": "https://a"}, headers={"X-Edit-Password": wire_value})
    assert r.status_code == 201

    r = client.post("/api/sites", json={"name": "A", "url": "https://a"}, headers={"X-Edit-Password": "wrong"})
    assert r.status_code == 403
