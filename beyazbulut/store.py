"""
Content tables on Supabase: poems, categories, likes, site copy and SEO.

Every helper takes the per-request client as the keyword-only ``sb``.
Reads that have an obvious fallback (lists, settings) log and degrade;
writes either report ``False`` or let the backend error reach the view.
"""

from datetime import datetime, timezone
from math import ceil

import httpx
from flask import current_app
from postgrest.exceptions import APIError

BACKEND_ERRORS = (APIError, httpx.HTTPError)

DEFAULT_CATEGORIES = ["Aşk", "Hüzün", "Doğa", "Özgürlük", "Nostalji"]
UNCATEGORIZED = "Kategorisiz"
DEFAULT_AUTHOR = "Yönetici"
DRAFT_ID_MIN_LEN = 11  # Date.now()-style ids are 13 chars, db ids are short
POEM_FIELDS = ("title", "content", "author", "category", "date", "likes")

DEFAULT_SETTINGS = {
    "site_name": "BEYAZBULUT",
    "hero_title": "Ruhun",
    "hero_highlight": "Yankısı",
    "hero_subtitle": (
        "Kelimelerin en saf hali. Pastel tonların huzurunda, "
        "duyguların edebi yolculuğu."
    ),
    "footer_quote": "“Kelimelerin hafifliği, ruhun kanatlarıdır.”",
    "footer_copyright": "© 2024 BeyazBulut. Tüm hakları saklıdır.",
    "about_title": "Hikayemiz",
    "about_quote": "“Her kelime, ruhun bir yansımasıdır.”",
    "about_text_primary": "",
    "about_text_secondary": "",
    "gemini_api_key": "",
}

DEFAULT_SEO = {
    "meta_title": "BEYAZBULUT - Estetik Şiir Platformu",
    "meta_description": (
        "En güzel şiirlerin, huzurlu ve estetik bir ortamda paylaşıldığı "
        "dijital edebiyat durağı."
    ),
    "meta_keywords": "şiir, edebiyat, aşk şiirleri, estetik, beyazbulut",
    "og_image_url": "",
}


def today_iso() -> str:
    return datetime.now(timezone.utc).date().isoformat()


################################################################################
# Poems
################################################################################
def list_poems(*, sb) -> list[dict]:
    """All poems, newest first."""
    try:
        res = sb.table("poems").select("*").order("date", desc=True).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Fetching poems failed")
        return []
    return res.data or []


def get_poem(poem_id, *, sb) -> dict | None:
    try:
        res = sb.table("poems").select("*").eq("id", poem_id).limit(1).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Fetching poem %s failed", poem_id)
        return None
    return res.data[0] if res.data else None


def is_draft_id(poem_id) -> bool:
    """
    A poem that was never stored carries either no id or a long
    client-side timestamp; rows from the database have short ids.
    """
    return not poem_id or len(str(poem_id)) >= DRAFT_ID_MIN_LEN


def save_poem(poem: dict, *, sb) -> None:
    """
    Insert drafts (letting the database assign the id), update the rest.
    Backend errors propagate so the editor can show them.
    """
    payload = {k: poem.get(k) for k in POEM_FIELDS}
    if is_draft_id(poem.get("id")):
        payload["likes"] = payload["likes"] or 0
        sb.table("poems").insert(payload).execute()
        current_app.logger.info("Poem inserted: %s", payload["title"])
    else:
        sb.table("poems").update(payload).eq("id", poem["id"]).execute()
        current_app.logger.info("Poem %s updated", poem["id"])


def delete_poem(poem_id, *, sb) -> bool:
    try:
        sb.table("poem_likes").delete().eq("poem_id", poem_id).execute()
        sb.table("poems").delete().eq("id", poem_id).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Deleting poem %s failed", poem_id)
        return False
    current_app.logger.info("Poem %s deleted", poem_id)
    return True


# Likes ─────────────────────────────────────────────────────────────────
def is_liked(poem_id, user_id, *, sb) -> bool:
    if not user_id:
        return False
    try:
        res = (
            sb.table("poem_likes")
            .select("poem_id")
            .eq("poem_id", poem_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
    except BACKEND_ERRORS:
        current_app.logger.warning("Like lookup failed for poem %s", poem_id)
        return False
    return bool(res.data)


def liked_poem_ids(user_id, *, sb) -> set[str]:
    if not user_id:
        return set()
    try:
        res = sb.table("poem_likes").select("poem_id").eq("user_id", user_id).execute()
    except BACKEND_ERRORS:
        current_app.logger.warning("Like lookup failed for user %s", user_id)
        return set()
    return {str(r["poem_id"]) for r in res.data or []}


def toggle_like(poem_id, user_id, *, sb) -> tuple[int, bool] | None:
    """
    Flip *user_id*'s like on a poem and return ``(likes, liked)``.

    One like per reader: an existing like is taken back, otherwise a new
    one is recorded.  If either write fails the like row is put back the
    way it was and the previous state is returned.  ``None`` means the
    poem is gone.
    """
    poem = get_poem(poem_id, sb=sb)
    if poem is None:
        return None
    old_likes = int(poem.get("likes") or 0)
    was_liked = is_liked(poem_id, user_id, sb=sb)

    try:
        _set_like_row(poem_id, user_id, liked=not was_liked, sb=sb)
    except BACKEND_ERRORS:
        current_app.logger.exception("Like toggle failed for poem %s", poem_id)
        return old_likes, was_liked

    new_likes = max(0, old_likes - 1) if was_liked else old_likes + 1
    try:
        sb.table("poems").update({"likes": new_likes}).eq("id", poem_id).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Like counter update failed for poem %s", poem_id)
        try:
            _set_like_row(poem_id, user_id, liked=was_liked, sb=sb)
        except BACKEND_ERRORS:
            current_app.logger.exception(
                "Could not restore like of %s on poem %s", user_id, poem_id
            )
        return old_likes, was_liked
    return new_likes, not was_liked


def _set_like_row(poem_id, user_id, *, liked: bool, sb) -> None:
    likes_tbl = sb.table("poem_likes")
    if liked:
        likes_tbl.insert({"poem_id": poem_id, "user_id": user_id}).execute()
    else:
        likes_tbl.delete().eq("poem_id", poem_id).eq("user_id", user_id).execute()


################################################################################
# Categories
################################################################################
def list_categories(*, sb) -> list[str]:
    try:
        res = sb.table("categories").select("name").execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Fetching categories failed")
        return []
    return [r["name"] for r in res.data or []]


def add_category(name: str, *, sb) -> bool:
    name = (name or "").strip()
    if not name or name in list_categories(sb=sb):
        return False
    try:
        sb.table("categories").insert({"name": name}).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Adding category %r failed", name)
        return False
    return True


def rename_category(old: str, new: str, *, sb) -> bool:
    """Rename a category and carry its poems along."""
    new = (new or "").strip()
    if new == old:
        return True
    if not new or new in list_categories(sb=sb):
        return False
    try:
        sb.table("categories").update({"name": new}).eq("name", old).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Renaming category %r failed", old)
        return False
    try:
        sb.table("poems").update({"category": new}).eq("category", old).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Moving poems from %r to %r failed", old, new)
        return False
    current_app.logger.info("Category %r renamed to %r", old, new)
    return True


def delete_category(name: str, *, sb) -> bool:
    """Drop a category; its poems move to the fallback category."""
    if name == UNCATEGORIZED:
        return False
    if UNCATEGORIZED not in list_categories(sb=sb):
        add_category(UNCATEGORIZED, sb=sb)
    try:
        sb.table("poems").update({"category": UNCATEGORIZED}).eq(
            "category", name
        ).execute()
        sb.table("categories").delete().eq("name", name).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Deleting category %r failed", name)
        return False
    current_app.logger.info("Category %r deleted", name)
    return True


def seed_categories(*, sb) -> list[str]:
    """Insert whichever default categories are missing; return the added ones."""
    existing = set(list_categories(sb=sb))
    added = []
    for name in DEFAULT_CATEGORIES:
        if name not in existing and add_category(name, sb=sb):
            added.append(name)
    return added


################################################################################
# Site copy + SEO (single-row tables)
################################################################################
def _first_row(table: str, *, sb) -> dict | None:
    res = sb.table(table).select("*").limit(1).execute()
    return res.data[0] if res.data else None


def _merged(row: dict | None, defaults: dict) -> dict:
    row = row or {}
    return {k: (row.get(k) or dflt) for k, dflt in defaults.items()}


def _upsert_first_row(table: str, payload: dict, *, sb) -> bool:
    try:
        res = sb.table(table).select("id").limit(1).execute()
        if res.data:
            sb.table(table).update(payload).eq("id", res.data[0]["id"]).execute()
        else:
            sb.table(table).insert(payload).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Saving %s failed", table)
        return False
    return True


def get_site_settings(*, sb) -> dict:
    try:
        row = _first_row("site_settings", sb=sb)
    except BACKEND_ERRORS:
        current_app.logger.warning("Site settings unavailable, using defaults")
        row = None
    return _merged(row, DEFAULT_SETTINGS)


def save_site_settings(values: dict, *, sb) -> bool:
    payload = {
        k: (values.get(k) or "").strip()
        for k in DEFAULT_SETTINGS
        if k != "gemini_api_key"
    }
    key = (values.get("gemini_api_key") or "").strip()
    if key:  # blank field keeps the stored key
        payload["gemini_api_key"] = key
    return _upsert_first_row("site_settings", payload, sb=sb)


def get_seo_settings(*, sb) -> dict:
    try:
        row = _first_row("seo_settings", sb=sb)
    except BACKEND_ERRORS:
        current_app.logger.warning("SEO settings unavailable, using defaults")
        row = None
    return _merged(row, DEFAULT_SEO)


def save_seo_settings(values: dict, *, sb) -> bool:
    payload = {k: (values.get(k) or "").strip() for k in DEFAULT_SEO}
    return _upsert_first_row("seo_settings", payload, sb=sb)


################################################################################
# List helpers (everything is fetched in full, then sliced here)
################################################################################
def tr_lower(text: str | None) -> str:
    """Lower-case with Turkish dotted/dotless i rules."""
    return (text or "").replace("I", "ı").replace("İ", "i").lower()


def search_by_title(poems: list[dict], term: str) -> list[dict]:
    needle = tr_lower(term.strip())
    if not needle:
        return list(poems)
    return [p for p in poems if needle in tr_lower(p.get("title"))]


def filter_by_category(poems: list[dict], category: str | None) -> list[dict]:
    if not category:
        return list(poems)
    return [p for p in poems if p.get("category") == category]


def most_liked(poems: list[dict], count: int = 2) -> list[dict]:
    return sorted(poems, key=lambda p: int(p.get("likes") or 0), reverse=True)[:count]


def paginate(items: list, page: int, per_page: int) -> tuple[list, int, int]:
    """Return ``(items on page, page, pages)``; *page* is clamped into range."""
    pages = max(1, ceil(len(items) / per_page))
    page = min(max(1, page), pages)
    start = (page - 1) * per_page
    return items[start : start + per_page], page, pages
