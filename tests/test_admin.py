"""
tests/test_admin.py
"""
from __future__ import annotations

import pytest
from werkzeug.security import generate_password_hash

from conftest import CSRF


def _post(client, path, **data):
    return client.post(path, data={"csrf": CSRF, **data})


# ───────────────────────── sign-in + guards ───────────────────────────
def test_admin_login_form(client, sb):
    html = client.get("/admin").get_data(as_text=True)
    assert 'name="username"' in html and 'name="password"' in html


def test_admin_login(client, sb):
    sb.tables["admin_users"] = [
        {"id": 3, "username": "editor", "password": generate_password_hash("1234")}
    ]
    rv = client.post("/admin", data={"username": "editor", "password": "1234"})
    assert rv.status_code == 302
    with client.session_transaction() as sess:
        assert sess["admin"] == {"id": 3, "username": "editor"}
        assert sess["csrf"]


def test_admin_login_wrong_password(client, sb):
    sb.tables["admin_users"] = [
        {"id": 3, "username": "editor", "password": generate_password_hash("1234")}
    ]
    rv = client.post("/admin", data={"username": "editor", "password": "x"})
    assert "Şifre hatalı." in rv.get_data(as_text=True)
    with client.session_transaction() as sess:
        assert "admin" not in sess


def test_admin_login_is_rate_limited(client, sb):
    for _ in range(5):
        assert client.post("/admin", data={"username": "x", "password": "y"}).status_code == 200
    rv = client.post("/admin", data={"username": "x", "password": "y"})
    assert rv.status_code == 429


def test_signed_in_admin_is_not_rate_limited(admin_client, sb):
    for _ in range(8):
        assert _post(admin_client, "/admin").status_code == 200


@pytest.mark.parametrize(
    "path",
    [
        "/admin/new",
        "/admin/edit/1",
        "/admin/delete/1",
        "/admin/categories",
        "/admin/ai",
        "/admin/settings",
        "/admin/seo",
        "/admin/profile",
        "/admin/password",
        "/admin/users",
    ],
)
def test_admin_pages_need_login(client, sb, path):
    rv = client.get(path)
    assert rv.status_code == 302
    assert rv.headers["Location"].endswith("/admin")
    assert client.post(path).status_code == 403


def test_admin_post_needs_csrf(admin_client, sb):
    rv = admin_client.post("/admin/categories", data={"action": "add", "name": "Umut"})
    assert rv.status_code == 403
    assert sb.rows("categories") == []


def test_admin_logout(admin_client, sb):
    rv = admin_client.get("/admin/logout")
    assert rv.status_code == 302
    with admin_client.session_transaction() as sess:
        assert "admin" not in sess


# ───────────────────────── dashboard ──────────────────────────────────
def test_dashboard_counts_and_search(admin_client, sb):
    sb.tables["categories"] = [{"id": 90, "name": "Aşk"}, {"id": 91, "name": "Doğa"}]
    sb.add_poem(title="Irmak")
    sb.add_poem(title="Deniz")
    html = admin_client.get("/admin").get_data(as_text=True)
    assert "Irmak" in html and "Deniz" in html

    html = admin_client.get("/admin?q=ırmak").get_data(as_text=True)
    table = html.split("<table>")[1]
    assert "Irmak" in table and "Deniz" not in table

    html = admin_client.get("/admin?q=yok").get_data(as_text=True)
    assert "aramasına uygun şiir bulunamadı" in html


# ───────────────────────── poems ──────────────────────────────────────
def test_new_poem(admin_client, sb):
    sb.tables["categories"] = [{"id": 90, "name": "Aşk"}]
    rv = _post(
        admin_client, "/admin/new",
        title="Bahar", content="çiçek\nböcek", author="", category="Aşk", date="",
    )
    assert rv.status_code == 302
    (row,) = sb.rows("poems")
    assert row["title"] == "Bahar"
    assert row["author"] == "Yönetici"
    assert row["likes"] == 0
    assert len(row["date"]) == 10 and row["date"][4] == "-"


def test_new_poem_requires_title_and_content(admin_client, sb):
    rv = _post(admin_client, "/admin/new", title="", content="x")
    assert rv.status_code == 200
    assert "zorunludur" in rv.get_data(as_text=True)
    assert sb.rows("poems") == []


def test_new_poem_unknown_category_falls_back(admin_client, sb):
    sb.tables["categories"] = [{"id": 90, "name": "Doğa"}]
    _post(admin_client, "/admin/new", title="T", content="C", category="Uydurma")
    assert sb.rows("poems")[0]["category"] == "Doğa"


def test_new_poem_backend_error_is_flashed(admin_client, sb):
    sb.tables["categories"] = [{"id": 90, "name": "Aşk"}]
    sb.failing.add("poems")
    rv = _post(admin_client, "/admin/new", title="T", content="C", category="Aşk")
    assert rv.status_code == 200
    html = rv.get_data(as_text=True)
    assert "permission denied" in html
    assert "veritabanı izinlerini" in html


def test_edit_poem_keeps_likes_and_date(admin_client, sb):
    sb.tables["categories"] = [{"id": 90, "name": "Aşk"}]
    p = sb.add_poem(title="Eski", likes=12, date="2023-07-07")
    html = admin_client.get(f"/admin/edit/{p['id']}").get_data(as_text=True)
    assert 'value="Eski"' in html

    _post(
        admin_client, f"/admin/edit/{p['id']}",
        title="Yeni", content="metin", category="Aşk", date="",
    )
    (row,) = sb.rows("poems")
    assert row["title"] == "Yeni"
    assert row["likes"] == 12
    assert row["date"] == "2023-07-07"


def test_edit_missing_poem(admin_client, sb):
    rv = admin_client.get("/admin/edit/999")
    assert rv.status_code == 302


def test_delete_poem_confirm_then_post(admin_client, sb):
    p = sb.add_poem(title="Gidecek")
    html = admin_client.get(f"/admin/delete/{p['id']}").get_data(as_text=True)
    assert "silinsin mi" in html and "Gidecek" in html
    assert sb.rows("poems")

    rv = _post(admin_client, f"/admin/delete/{p['id']}")
    assert rv.status_code == 302
    assert sb.rows("poems") == []


# ───────────────────────── categories ─────────────────────────────────
def test_category_actions(admin_client, sb):
    _post(admin_client, "/admin/categories", action="add", name="Umut")
    assert [c["name"] for c in sb.rows("categories")] == ["Umut"]

    rv = _post(admin_client, "/admin/categories", action="add", name="Umut")
    follow = admin_client.get(rv.headers["Location"]).get_data(as_text=True)
    assert "zaten mevcut" in follow

    p = sb.add_poem(category="Umut")
    _post(admin_client, "/admin/categories", action="rename", name="Umut", new_name="Ümit")
    assert sb.rows("poems")[0]["category"] == "Ümit"

    _post(admin_client, "/admin/categories", action="delete", name="Ümit")
    assert [c["name"] for c in sb.rows("categories")] == ["Kategorisiz"]
    assert sb.rows("poems")[0]["category"] == "Kategorisiz"
    assert p["id"] == sb.rows("poems")[0]["id"]


def test_uncategorized_cannot_be_deleted(admin_client, sb):
    sb.tables["categories"] = [{"id": 90, "name": "Kategorisiz"}]
    html = admin_client.get("/admin/categories").get_data(as_text=True)
    assert 'value="delete"' not in html
    _post(admin_client, "/admin/categories", action="delete", name="Kategorisiz")
    assert sb.rows("categories") == [{"id": 90, "name": "Kategorisiz"}]


# ───────────────────────── settings + SEO ─────────────────────────────
def test_site_settings_save(admin_client, sb):
    rv = _post(
        admin_client, "/admin/settings",
        site_name="Yeni Ad", hero_title="Selam", gemini_api_key="",
    )
    assert rv.status_code == 302
    (row,) = sb.rows("site_settings")
    assert row["site_name"] == "Yeni Ad"
    assert "gemini_api_key" not in row
    html = admin_client.get("/").get_data(as_text=True)
    assert "Yeni Ad" in html


def test_settings_page_hides_stored_key(admin_client, sb):
    sb.tables["site_settings"] = [{"id": 1, "gemini_api_key": "gizli-anahtar"}]
    html = admin_client.get("/admin/settings").get_data(as_text=True)
    assert "gizli-anahtar" not in html
    assert "kayıtlı" in html


def test_seo_rejects_non_http_image(admin_client, sb):
    _post(admin_client, "/admin/seo", meta_title="T", og_image_url="javascript:alert(1)")
    assert sb.rows("seo_settings") == []
    _post(admin_client, "/admin/seo", meta_title="T", og_image_url="https://img.test/x.png")
    assert sb.rows("seo_settings")[0]["og_image_url"] == "https://img.test/x.png"


# ───────────────────────── accounts ───────────────────────────────────
def _with_admins(sb):
    sb.tables["admin_users"] = [
        {"id": 1, "username": "editor", "password": generate_password_hash("1234")},
        {"id": 2, "username": "other", "password": generate_password_hash("1234")},
    ]


def test_profile_update(admin_client, sb):
    _with_admins(sb)
    rv = _post(
        admin_client, "/admin/profile",
        username="redaktör", new_password="yeni1", confirm_password="yeni1",
    )
    assert rv.status_code == 302
    with admin_client.session_transaction() as sess:
        assert sess["admin"]["username"] == "redaktör"
    assert sb.rows("admin_users")[0]["username"] == "redaktör"


def test_profile_password_mismatch(admin_client, sb):
    _with_admins(sb)
    rv = _post(
        admin_client, "/admin/password",
        username="editor", new_password="yeni1", confirm_password="yeni2",
    )
    assert "Şifreler eşleşmiyor!" in rv.get_data(as_text=True)


def test_profile_username_taken(admin_client, sb):
    _with_admins(sb)
    rv = _post(admin_client, "/admin/profile", username="other")
    assert "alınmış olabilir" in rv.get_data(as_text=True)


def test_users_add_and_delete(admin_client, sb):
    _with_admins(sb)
    _post(admin_client, "/admin/users", action="add", username="yeni", password="abcd")
    assert [u["username"] for u in sb.rows("admin_users")][-1] == "yeni"

    rv = _post(admin_client, "/admin/users", action="add", username="ye", password="abcd")
    follow = admin_client.get(rv.headers["Location"]).get_data(as_text=True)
    assert "Hata:" in follow

    _post(admin_client, "/admin/users", action="delete", id="2")
    assert "other" not in [u["username"] for u in sb.rows("admin_users")]

    _post(admin_client, "/admin/users", action="delete", id="1")
    assert "editor" in [u["username"] for u in sb.rows("admin_users")]
