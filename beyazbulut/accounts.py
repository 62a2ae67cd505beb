"""
Two kinds of accounts:

• admins – rows in the ``admin_users`` table, username + password hash
• readers – Supabase Auth users of the public site
"""

import secrets

from flask import current_app
from supabase import AuthError
from werkzeug.security import check_password_hash, generate_password_hash

from .store import BACKEND_ERRORS

ADMIN_USERNAME_MIN = 3
ADMIN_PASSWORD_MIN = 4
READER_PASSWORD_MIN = 6
_HASH_PREFIXES = ("scrypt:", "pbkdf2:")


class LoginError(Exception):
    """Sign-in/up failed; ``str(exc)`` is safe to show to the visitor."""


###############################################################################
# Admins
###############################################################################
def _is_hashed(stored: str) -> bool:
    return stored.startswith(_HASH_PREFIXES)


def _password_matches(stored: str | None, password: str) -> bool:
    if not stored:
        return False
    if _is_hashed(stored):
        return check_password_hash(stored, password)
    return secrets.compare_digest(stored, password)  # legacy plain text


def _find_admin(username: str, *, sb) -> dict | None:
    res = (
        sb.table("admin_users")
        .select("*")
        .eq("username", username)
        .limit(1)
        .execute()
    )
    return res.data[0] if res.data else None


def authenticate_admin(username: str, password: str, *, sb) -> dict:
    """Return ``{id, username}`` for valid credentials, raise LoginError otherwise."""
    username = (username or "").strip()
    try:
        row = _find_admin(username, sb=sb)
    except BACKEND_ERRORS:
        current_app.logger.exception("Admin lookup failed")
        raise LoginError("Veritabanı bağlantı hatası.")
    if row is None:
        raise LoginError("Kullanıcı bulunamadı veya erişim engellendi.")
    if not _password_matches(row.get("password"), password):
        raise LoginError("Şifre hatalı.")

    if not _is_hashed(row["password"]):
        try:
            sb.table("admin_users").update(
                {"password": generate_password_hash(password)}
            ).eq("id", row["id"]).execute()
        except BACKEND_ERRORS:
            current_app.logger.warning("Could not upgrade password for %s", username)
    return {"id": row["id"], "username": row["username"]}


def list_admins(*, sb) -> list[dict]:
    try:
        res = sb.table("admin_users").select("id, username").order("id").execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Fetching admins failed")
        return []
    return res.data or []


def create_admin(username: str, password: str, *, sb) -> dict:
    username = (username or "").strip()
    if len(username) < ADMIN_USERNAME_MIN or len(password or "") < ADMIN_PASSWORD_MIN:
        raise ValueError(
            f"Kullanıcı adı en az {ADMIN_USERNAME_MIN}, "
            f"şifre en az {ADMIN_PASSWORD_MIN} karakter olmalıdır."
        )
    if _find_admin(username, sb=sb):
        raise ValueError("Bu kullanıcı adı zaten alınmış.")
    res = (
        sb.table("admin_users")
        .insert({"username": username, "password": generate_password_hash(password)})
        .execute()
    )
    current_app.logger.info("Admin %s created", username)
    return res.data[0] if res.data else {"username": username}


def delete_admin(admin_id, *, current_id, sb) -> bool:
    if str(admin_id) == str(current_id):
        return False
    try:
        sb.table("admin_users").delete().eq("id", admin_id).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Deleting admin %s failed", admin_id)
        return False
    current_app.logger.info("Admin %s deleted", admin_id)
    return True


def update_admin_profile(
    current_username: str, new_username: str, new_password: str = "", *, sb
) -> bool:
    """Rename the admin and, if given, set a new password."""
    new_username = (new_username or "").strip()
    if len(new_username) < ADMIN_USERNAME_MIN:
        return False
    if new_password and len(new_password) < ADMIN_PASSWORD_MIN:
        return False
    try:
        if new_username != current_username and _find_admin(new_username, sb=sb):
            return False
        changes = {"username": new_username}
        if new_password:
            changes["password"] = generate_password_hash(new_password)
        sb.table("admin_users").update(changes).eq(
            "username", current_username
        ).execute()
    except BACKEND_ERRORS:
        current_app.logger.exception("Updating admin %s failed", current_username)
        return False
    return True


###############################################################################
# Readers (Supabase Auth)
###############################################################################
def profile_from_user(user) -> dict:
    meta = getattr(user, "user_metadata", None) or {}
    email = getattr(user, "email", "") or ""
    return {
        "id": user.id,
        "email": email,
        "username": meta.get("username") or email.split("@")[0],
        "full_name": meta.get("full_name", ""),
    }


def sign_up_public(email: str, password: str, full_name: str, username: str, *, sb):
    if len(password or "") < READER_PASSWORD_MIN:
        raise ValueError(f"Şifre en az {READER_PASSWORD_MIN} karakter olmalıdır.")
    try:
        res = sb.auth.sign_up(
            {
                "email": (email or "").strip(),
                "password": password,
                "options": {
                    "data": {
                        "username": (username or "").strip(),
                        "full_name": (full_name or "").strip(),
                    }
                },
            }
        )
    except AuthError as exc:
        current_app.logger.warning("Sign-up failed: %s", exc)
        raise LoginError(getattr(exc, "message", "") or "Kayıt sırasında bir hata oluştu.")
    if not res.user:
        raise LoginError("Kayıt sırasında bir hata oluştu.")
    return profile_from_user(res.user)


def _tokens(session) -> dict:
    return {
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
    }


def sign_in_public(email: str, password: str, *, sb) -> dict:
    try:
        res = sb.auth.sign_in_with_password(
            {"email": (email or "").strip(), "password": password}
        )
    except AuthError as exc:
        current_app.logger.info("Reader sign-in rejected: %s", exc)
        raise LoginError("Giriş başarısız. Lütfen bilgilerinizi kontrol edin.")
    if not res.user or not res.session:
        raise LoginError("Giriş başarısız. Lütfen bilgilerinizi kontrol edin.")
    return {**_tokens(res.session), "profile": profile_from_user(res.user)}


def user_from_tokens(access: str | None, refresh: str | None, *, sb):
    """
    Resolve the reader behind a token pair -> ``(profile, tokens)``.

    *tokens* is a fresh pair when the access token had to be refreshed,
    the unchanged pair otherwise, and ``None`` when the reader is gone.
    """
    if not access:
        return None, None
    try:
        res = sb.auth.get_user(access)
        if res and res.user:
            return profile_from_user(res.user), {
                "access_token": access,
                "refresh_token": refresh,
            }
    except AuthError:
        pass  # expired, try the refresh token below
    if not refresh:
        return None, None
    try:
        res = sb.auth.refresh_session(refresh)
    except AuthError:
        current_app.logger.info("Reader session could not be refreshed")
        return None, None
    if not res or not res.user or not res.session:
        return None, None
    return profile_from_user(res.user), _tokens(res.session)


def sign_out_public(access: str | None, refresh: str | None, *, sb) -> None:
    if not access or not refresh:
        return
    try:
        sb.auth.set_session(access, refresh)
        sb.auth.sign_out()
    except AuthError:
        current_app.logger.warning("Remote sign-out failed")
