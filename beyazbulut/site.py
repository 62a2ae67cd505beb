#!/usr/bin/env python3
"""
BEYAZBULUT – a small poetry site.

Readers browse and like poems; editors run everything from /admin.
All data lives in Supabase, poem drafts can come from Gemini.
"""

import os
import re
import secrets
from collections import defaultdict, deque
from datetime import date, datetime, timezone
from functools import wraps
from html import escape
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from time import time
from typing import DefaultDict

import click
import markdown
from flask import (
    Flask,
    Response,
    abort,
    flash,
    g,
    jsonify,
    redirect,
    render_template_string,
    request,
    session,
    url_for,
)
from markupsafe import Markup
from supabase import create_client
from werkzeug.middleware.proxy_fix import ProxyFix

from . import muse
from .accounts import (
    LoginError,
    authenticate_admin,
    create_admin,
    delete_admin,
    list_admins,
    sign_in_public,
    sign_out_public,
    sign_up_public,
    update_admin_profile,
    user_from_tokens,
)
from .store import (
    BACKEND_ERRORS,
    DEFAULT_AUTHOR,
    DEFAULT_SEO,
    DEFAULT_SETTINGS,
    UNCATEGORIZED,
    add_category,
    delete_category,
    delete_poem,
    filter_by_category,
    get_poem,
    get_seo_settings,
    get_site_settings,
    is_liked,
    liked_poem_ids,
    list_categories,
    list_poems,
    most_liked,
    paginate,
    rename_category,
    save_poem,
    save_seo_settings,
    save_site_settings,
    search_by_title,
    seed_categories,
    today_iso,
    toggle_like,
)

################################################################################
# Imports & constants
################################################################################

ROOT = Path(__file__).parent
ENV_FILE = ROOT / ".env"
SECRET_FILE = ROOT / ".secret_key"

POEMS_PER_PAGE = 4
MOST_LIKED_COUNT = 2
RSS_LIMIT = 50
LOGIN_RATE_LIMIT = 5  # POSTs per window and IP
LOGIN_RATE_WINDOW = 60
ACCENT = "#b48ead"
RFC2822_FMT = "%a, %d %b %Y %H:%M:%S %z"
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
MD_EXTENSIONS = ["pymdownx.extra", "pymdownx.betterem", "pymdownx.tilde"]

LIKE_LOGIN_MSG = "Beğenmek için lütfen giriş yapın."

try:
    __version__ = version("beyazbulut")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"


def _read_env_file() -> dict[str, str]:
    env = {}
    if not ENV_FILE.exists():
        return env
    for ln in ENV_FILE.read_text().splitlines():
        ln = ln.strip()
        if not ln or ln.startswith("#") or "=" not in ln:
            continue
        k, v = ln.split("=", 1)
        env[k.strip()] = v.strip().strip('"').strip("'")
    return env


def env_config(*keys: str) -> dict[str, str]:
    """Process environment first, `.env` beside the package second."""
    env_file = _read_env_file()
    return {k: (os.environ.get(k) or env_file.get(k) or "").strip() for k in keys}


def _secret_key() -> str:
    if key := os.environ.get("SECRET_KEY"):
        return key
    if SECRET_FILE.exists():
        return SECRET_FILE.read_text().strip()
    key = secrets.token_hex(32)
    try:
        SECRET_FILE.write_text(key)
    except OSError:
        pass  # read-only install: the key just won't survive a restart
    return key


################################################################################
# App + template filters
################################################################################
app = Flask(__name__)
app.url_map.strict_slashes = False
app.config.update(SECRET_KEY=_secret_key())
app.config.update(
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SECURE=True,
    POEMS_PER_PAGE=POEMS_PER_PAGE,
    GEMINI_MODEL=env_config("GEMINI_MODEL")["GEMINI_MODEL"] or muse.DEFAULT_MODEL,
    **env_config("SUPABASE_URL", "SUPABASE_KEY", "GEMINI_API_KEY"),
)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)


@app.template_filter("tarih")
def tarih_filter(value: str | None) -> str:
    """ISO date → 19.10.2026; anything else is shown as stored."""
    if not value:
        return ""
    try:
        return date.fromisoformat(str(value)[:10]).strftime("%d.%m.%Y")
    except ValueError:
        return str(value)


@app.template_filter("excerpt")
def excerpt_filter(text: str | None, lines: int = 4) -> str:
    rows = (text or "").splitlines()
    cut = "\n".join(rows[:lines]).strip()
    return cut + ("\n…" if len(rows) > lines else "")


@app.template_filter("md")
def md_filter(text: str | None) -> Markup:
    return Markup(markdown.markdown(text or "", extensions=MD_EXTENSIONS))


###############################################################################
# Backend helpers
###############################################################################
def supabase_configured() -> bool:
    return bool(app.config.get("SUPABASE_URL") and app.config.get("SUPABASE_KEY"))


def get_sb():
    """One Supabase client per request, so auth state never leaks across users."""
    if "sb" not in g:
        if not supabase_configured():
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
        g.sb = create_client(app.config["SUPABASE_URL"], app.config["SUPABASE_KEY"])
    return g.sb


def get_auth_sb():
    """
    Second client for Supabase Auth calls only.  Signing in or refreshing
    a reader switches a client over to the reader's token, and the table
    client in `get_sb` must keep the server key.
    """
    if "auth_sb" not in g:
        if not supabase_configured():
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
        g.auth_sb = create_client(app.config["SUPABASE_URL"], app.config["SUPABASE_KEY"])
    return g.auth_sb


def site_settings() -> dict:
    if "site" not in g:
        if supabase_configured():
            g.site = get_site_settings(sb=get_sb())
        else:
            g.site = dict(DEFAULT_SETTINGS)
    return g.site


def seo_settings() -> dict:
    if "seo" not in g:
        g.seo = get_seo_settings(sb=get_sb()) if supabase_configured() else dict(DEFAULT_SEO)
    return g.seo


def nav_categories() -> list[str]:
    if "categories" not in g:
        g.categories = list_categories(sb=get_sb()) if supabase_configured() else []
    return g.categories


def _back_to(target: str | None, fallback: str) -> str:
    """Only follow local paths."""
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return fallback


def _page_arg() -> int:
    try:
        return int(request.args.get("page", 1))
    except (TypeError, ValueError):
        return 1


###############################################################################
# CLI – admin accounts + categories
###############################################################################
@app.cli.command("create-admin")
@click.option("--username", prompt=True, help="Admin username")
@click.password_option(help="Admin password")
def cli_create_admin(username: str, password: str):
    """Create an admin account in the admin_users table."""
    try:
        create_admin(username, password, sb=get_sb())
    except ValueError as exc:
        raise click.ClickException(str(exc))

    click.secho(f"\n✅  Admin {username.strip()} created.", fg="green")
    click.echo("Sign in at /admin.")


@app.cli.command("seed-categories")
def cli_seed_categories():
    """Insert the default categories that are missing."""
    added = seed_categories(sb=get_sb())
    if added:
        click.secho("Added: " + ", ".join(added), fg="green")
    else:
        click.echo("Nothing to add.")


###############################################################################
# Authentication
###############################################################################
def current_admin() -> dict | None:
    return session.get("admin")


def admin_required() -> dict:
    admin = current_admin()
    if not admin:
        if request.method == "GET":
            abort(redirect(url_for("admin")))
        abort(403)
    return admin


def current_reader() -> dict | None:
    """The signed-in Supabase user of this request (refreshing tokens if needed)."""
    if "reader" in g:
        return g.reader
    g.reader = None  # stays None if the auth server is unreachable
    tokens = session.get("sb_tokens")
    if not tokens or not supabase_configured():
        return None
    profile, fresh = user_from_tokens(
        tokens.get("access_token"), tokens.get("refresh_token"), sb=get_auth_sb()
    )
    if profile is None:
        session.pop("sb_tokens", None)
        session.pop("reader", None)
        return None
    session["reader"] = profile
    if fresh != tokens:
        session["sb_tokens"] = fresh
    g.reader = profile
    return profile


def _start_session() -> None:
    session.permanent = True
    session.setdefault("csrf", secrets.token_hex(16))


def _end_session_if_empty() -> None:
    if not session.get("admin") and not session.get("sb_tokens"):
        session.clear()


_rate_hits: DefaultDict[str, deque] = defaultdict(deque)


def client_ip() -> str:
    return (
        request.access_route[0] if request.access_route else request.remote_addr
    ) or "unknown"


def rate_limit(max_requests: int, window: int = 60, *, exempt=None):
    """
    Sliding window over POSTs, per view and client IP.

    *exempt* is an optional callable; requests for which it returns
    something truthy are not counted.
    """

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if request.method != "POST" or (exempt and exempt()):
                return view(*args, **kwargs)
            now = time()
            dq = _rate_hits[f"{view.__name__}:{client_ip()}"]
            while dq and now - dq[0] > window:
                dq.popleft()

            if len(dq) >= max_requests:
                retry_after = int(window - (now - dq[0]))
                return Response(
                    "Çok fazla deneme – lütfen biraz sonra tekrar deneyin.",
                    status=429,
                    headers={"Retry-After": str(retry_after)},
                )

            dq.append(now)
            return view(*args, **kwargs)

        return wrapped

    return decorator


def _csrf_token() -> str:
    """One token per signed-in session."""
    return session.get("csrf", "")


SAFE_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE"}


@app.before_request
def csrf_protect():
    if request.method in SAFE_METHODS:
        return
    # anonymous posts (the login forms) carry nothing worth forging
    if not session.get("admin") and not session.get("sb_tokens"):
        return
    token = session.get("csrf", "")
    sent = request.form.get("csrf") or request.headers.get("X-CSRFToken", "")
    if not token or not secrets.compare_digest(token, sent):
        abort(403)


@app.after_request
def sec_headers(resp):
    resp.headers.update(
        {
            "X-Frame-Options": "DENY",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "strict-origin-when-cross-origin",
        }
    )
    return resp


# Expose helpers to templates
app.jinja_env.globals.update(
    csrf_token=_csrf_token,
    version=__version__,
    accent=ACCENT,
    UNCATEGORIZED=UNCATEGORIZED,
    like_login_msg=LIKE_LOGIN_MSG,
)


@app.context_processor
def inject_layout():
    return {
        "site": site_settings(),
        "seo": seo_settings(),
        "nav_categories": nav_categories(),
        "reader": current_reader(),
        "admin_user": current_admin(),
    }


###############################################################################
# Templates
###############################################################################
def wrap(body: str) -> str:
    """Glue prolog + page-specific body + epilog."""
    return TEMPL_PROLOG + body + TEMPL_EPILOG


TEMPL_PROLOG = """
<!doctype html>
<html lang="tr">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{ title ~ ' – ' ~ site.site_name if title else seo.meta_title }}</title>
<meta name="description" content="{{ description or seo.meta_description }}">
<meta name="keywords" content="{{ seo.meta_keywords }}">
<meta property="og:type" content="website">
<meta property="og:title" content="{{ title or seo.meta_title }}">
<meta property="og:description" content="{{ description or seo.meta_description }}">
{% if seo.og_image_url %}<meta property="og:image" content="{{ seo.og_image_url }}">{% endif %}
<link rel="icon" type="image/svg+xml" href="{{ url_for('favicon') }}">
<link rel="alternate" type="application/rss+xml"
      href="{{ url_for('rss') }}" title="{{ site.site_name }} – RSS">
<style>
body{font-family:Georgia,"Times New Roman",serif;background:#fbf9f7;color:#44403c;max-width:64rem;margin:auto;padding:1rem 1.25rem;line-height:1.65}
a{color:{{ accent }};text-decoration:none}a:hover{text-decoration:underline}
header{display:flex;flex-wrap:wrap;align-items:baseline;justify-content:space-between;gap:1rem;border-bottom:1px solid #e7e0da;padding-bottom:.75rem}
header .brand{font-size:1.6rem;letter-spacing:.15em;color:#57534e}
nav a{margin-right:1rem}nav .cats a{font-size:.9em;color:#78716c}
.flash{background:#f4ecf7;border-left:4px solid {{ accent }};padding:.6rem 1rem;margin:1rem 0}
.hero{text-align:center;padding:3rem 0}.hero h1{font-size:2.6rem;margin:0}.hero em{color:{{ accent }};font-style:italic}
.grid{display:grid;grid-template-columns:repeat(auto-fill,minmax(16rem,1fr));gap:1.25rem}
.card{background:#fff;border:1px solid #eee4dc;border-radius:1rem;padding:1.25rem;display:flex;flex-direction:column}
.card.featured{border-color:{{ accent }}}
.card .cat{font-size:.75em;text-transform:uppercase;letter-spacing:.1em;color:#a8a29e}
.card h3{margin:.3rem 0}.card pre,.poem-body{font-family:inherit;white-space:pre-line;margin:0}
.card footer{margin-top:auto;display:flex;justify-content:space-between;align-items:center;font-size:.85em;color:#78716c;padding-top:.75rem}
.like-form{display:inline}.like-form button{background:none;border:0;cursor:pointer;color:#a8a29e;font-size:1em}
.like-form button.liked{color:#e11d48}
.pager{display:flex;gap:.4rem;justify-content:center;margin:2rem 0}.pager a,.pager span{padding:.2rem .7rem;border:1px solid #e7e0da;border-radius:999px}
.pager .current{background:{{ accent }};color:#fff;border-color:{{ accent }}}
.chips a{display:inline-block;padding:.15rem .8rem;border:1px solid #e7e0da;border-radius:999px;margin:0 .3rem .4rem 0;color:#78716c}
.chips a.active{background:{{ accent }};color:#fff;border-color:{{ accent }}}
form.stack label{display:block;margin:.8rem 0 .2rem;font-size:.85em;color:#78716c}
form.stack input,form.stack textarea,form.stack select{width:100%;box-sizing:border-box;padding:.5rem;border:1px solid #d6d3d1;border-radius:.4rem;font:inherit}
button,.button{background:{{ accent }};color:#fff;border:0;border-radius:.4rem;padding:.45rem 1rem;cursor:pointer;font:inherit}
.danger{background:#b91c1c}.muted{color:#a8a29e}.hp{position:absolute;left:-9999px}
table{width:100%;border-collapse:collapse}td,th{padding:.4rem;border-bottom:1px solid #eee4dc;text-align:left}
footer.site{margin-top:3rem;border-top:1px solid #e7e0da;padding-top:1rem;text-align:center;color:#a8a29e;font-size:.9em}
</style>
</head>
<body>
{% macro csrf_field() -%}
  {% if csrf_token() %}<input type="hidden" name="csrf" value="{{ csrf_token() }}">{% endif %}
{%- endmacro %}
{% macro like_button(p, liked, can_like) -%}
  {% if can_like %}
  <form class="like-form" method="post" action="{{ url_for('like_poem', poem_id=p.id) }}">
    {{ csrf_field() }}
    <input type="hidden" name="next" value="{{ request.path }}">
    <button type="submit" class="{{ 'liked' if liked }}" aria-label="Beğen">♥
      <span class="like-count">{{ p.likes or 0 }}</span></button>
  </form>
  {% else %}
  <a class="muted" href="{{ url_for('login') }}" title="{{ like_login_msg }}">♥ {{ p.likes or 0 }}</a>
  {% endif %}
{%- endmacro %}
{% macro poem_card(p, liked=False, can_like=False, featured=False) -%}
  <article class="card{{ ' featured' if featured }}">
    <a class="cat" href="{{ url_for('category', name=p.category) }}">{{ p.category }}</a>
    <h3><a href="{{ url_for('poem_detail', poem_id=p.id) }}">{{ p.title }}</a></h3>
    <pre>{{ p.content|excerpt }}</pre>
    <footer>
      {{ like_button(p, liked, can_like) }}
      <span>{{ p.author }} · {{ p.date|tarih }}</span>
    </footer>
  </article>
{%- endmacro %}
{% macro pager(page, pages, endpoint) -%}
  {% if pages > 1 %}
  <nav class="pager" aria-label="Sayfalar">
    {% if page > 1 %}<a href="{{ url_for(endpoint, page=page-1, **kwargs) }}">‹</a>{% endif %}
    {% for n in range(1, pages + 1) %}
      {% if n == page %}<span class="current">{{ n }}</span>
      {% else %}<a href="{{ url_for(endpoint, page=n, **kwargs) }}">{{ n }}</a>{% endif %}
    {% endfor %}
    {% if page < pages %}<a href="{{ url_for(endpoint, page=page+1, **kwargs) }}">›</a>{% endif %}
  </nav>
  {% endif %}
{%- endmacro %}
<header>
  <a class="brand" href="{{ url_for('index') }}">{{ site.site_name }}</a>
  <nav>
    <a href="{{ url_for('index') }}">Ana Sayfa</a>
    <a href="{{ url_for('about') }}">Hakkında</a>
    {% if admin_user %}<a href="{{ url_for('admin') }}">Yönetim</a>{% endif %}
    {% if reader %}
      <span class="muted">{{ reader.username }}</span>
      <a href="{{ url_for('logout') }}">Çıkış</a>
    {% else %}
      <a href="{{ url_for('login') }}">Giriş</a>
      <a href="{{ url_for('register') }}">Üye Ol</a>
    {% endif %}
    {% if nav_categories %}
    <div class="cats">
      {% for c in nav_categories %}<a href="{{ url_for('category', name=c) }}">{{ c }}</a>{% endfor %}
    </div>
    {% endif %}
  </nav>
</header>
{% with msgs = get_flashed_messages() %}
  {% for m in msgs %}<div class="flash" role="status">{{ m }}</div>{% endfor %}
{% endwith %}
<main id="main-content">
"""

TEMPL_EPILOG = """
</main>
<footer class="site">
  <p><em>{{ site.footer_quote }}</em></p>
  <p>{{ site.footer_copyright }}</p>
</footer>
<script>
// Optimistic likes: flip first, then trust whatever the server says.
document.querySelectorAll('form.like-form').forEach(f => {
  f.addEventListener('submit', async ev => {
    ev.preventDefault();
    const btn = f.querySelector('button');
    const cnt = f.querySelector('.like-count');
    const wasLiked = btn.classList.contains('liked');
    const prev = parseInt(cnt.textContent, 10) || 0;
    btn.classList.toggle('liked', !wasLiked);
    cnt.textContent = wasLiked ? Math.max(0, prev - 1) : prev + 1;
    const csrf = f.querySelector('input[name="csrf"]');
    try {
      const res = await fetch(f.action, {
        method: 'POST',
        headers: {'Accept': 'application/json',
                  'X-CSRFToken': csrf ? csrf.value : ''},
      });
      if (!res.ok) throw new Error(res.status);
      const data = await res.json();
      cnt.textContent = data.likes;
      btn.classList.toggle('liked', data.liked);
    } catch (err) {
      btn.classList.toggle('liked', wasLiked);
      cnt.textContent = prev;
    }
  });
});
</script>
</body>
</html>
"""


###############################################################################
# Public pages
###############################################################################
def _reader_likes(reader) -> set[str]:
    return liked_poem_ids(reader["id"], sb=get_sb()) if reader else set()


@app.route("/")
def index():
    poems = list_poems(sb=get_sb())
    category = request.args.get("category", "").strip()
    latest, page, pages = paginate(
        filter_by_category(poems, category), _page_arg(), app.config["POEMS_PER_PAGE"]
    )
    reader = current_reader()
    return render_template_string(
        TEMPL_INDEX,
        title=None,
        featured=[] if category else most_liked(poems, MOST_LIKED_COUNT),
        latest=latest,
        page=page,
        pages=pages,
        category=category,
        liked_ids=_reader_likes(reader),
    )


TEMPL_INDEX = wrap("""
<section class="hero">
  <h1>{{ site.hero_title }} <em>{{ site.hero_highlight }}</em></h1>
  <p>{{ site.hero_subtitle }}</p>
</section>

{% if featured %}
<section>
  <h2>En Beğenilenler</h2>
  <div class="grid">
    {% for p in featured %}
      {{ poem_card(p, (p.id|string) in liked_ids, reader, True) }}
    {% endfor %}
  </div>
</section>
{% endif %}

<section id="latest-poems">
  <h2>Son Şiirler</h2>
  <div class="chips">
    <a href="{{ url_for('index') }}" class="{{ 'active' if not category }}">Tümü</a>
    {% for c in nav_categories %}
      <a href="{{ url_for('index', category=c) }}" class="{{ 'active' if c == category }}">{{ c }}</a>
    {% endfor %}
  </div>
  {% if latest %}
  <div class="grid">
    {% for p in latest %}
      {{ poem_card(p, (p.id|string) in liked_ids, reader) }}
    {% endfor %}
  </div>
  {% else %}
  <p class="muted">Bu kategoride henüz şiir bulunmuyor.</p>
  {% endif %}
  {% if category %}
    {{ pager(page, pages, 'index', category=category) }}
  {% else %}
    {{ pager(page, pages, 'index') }}
  {% endif %}
</section>
""")


@app.route("/about")
def about():
    return render_template_string(TEMPL_ABOUT, title=site_settings()["about_title"])


TEMPL_ABOUT = wrap("""
<section class="hero">
  <h1>{{ site.about_title }}</h1>
  <p><em>{{ site.about_quote }}</em></p>
</section>
{% if site.about_text_primary %}<section>{{ site.about_text_primary|md }}</section>{% endif %}
{% if site.about_text_secondary %}<section>{{ site.about_text_secondary|md }}</section>{% endif %}
<section class="grid">
  <div class="card"><h3>Anlam</h3>
    <p>Sadece sözcükler değil, arkasındaki anlam ve duygu yükü bizim için önemlidir.</p></div>
  <div class="card"><h3>Sadelik</h3>
    <p>Gözü yormayan, okuma zevkini artıran minimalist bir tasarım anlayışı.</p></div>
  <div class="card"><h3>Huzur</h3>
    <p>Dijital kaosta bir nefes alma durağı. Sakinlik ve huzur önceliğimiz.</p></div>
</section>
""")


@app.route("/poem/<poem_id>")
def poem_detail(poem_id):
    poem = get_poem(poem_id, sb=get_sb())
    if poem is None:
        abort(404)
    reader = current_reader()
    liked = is_liked(poem_id, reader["id"], sb=get_sb()) if reader else False
    return render_template_string(
        TEMPL_POEM,
        p=poem,
        liked=liked,
        title=poem["title"],
        description=next(iter((poem.get("content") or "").splitlines()), None),
    )


TEMPL_POEM = wrap("""
<article style="max-width:40rem;margin:2rem auto;">
  <a class="muted" href="{{ url_for('category', name=p.category) }}">{{ p.category }}</a>
  <h1>{{ p.title }}</h1>
  <p class="muted">{{ p.author }} · {{ p.date|tarih }}</p>
  <div class="poem-body">{{ p.content }}</div>
  <p style="margin-top:2rem;">
    {{ like_button(p, liked, reader) }}
    {% if reader %}
      <button type="button" id="share-btn" data-title="{{ p.title }}">Paylaş</button>
    {% else %}
      <span class="muted">Beğenmek ve paylaşmak için <a href="{{ url_for('login') }}">giriş yapın</a>.</span>
    {% endif %}
  </p>
</article>
{% if reader %}
<script>
document.getElementById('share-btn').addEventListener('click', async ev => {
  const url = window.location.href;
  if (navigator.share) {
    try { await navigator.share({title: ev.target.dataset.title, url}); } catch (err) {}
  } else {
    await navigator.clipboard.writeText(url);
    alert('Bağlantı kopyalandı!');
  }
});
</script>
{% endif %}
""")


@app.route("/poem/<poem_id>/like", methods=["POST"])
def like_poem(poem_id):
    wants_json = request.accept_mimetypes.best == "application/json"
    back = _back_to(
        request.form.get("next"), url_for("poem_detail", poem_id=poem_id)
    )
    reader = current_reader()
    if not reader:
        if wants_json:
            return jsonify(error=LIKE_LOGIN_MSG), 401
        flash(LIKE_LOGIN_MSG)
        return redirect(url_for("login"))

    result = toggle_like(poem_id, reader["id"], sb=get_sb())
    if result is None:
        abort(404)
    likes, liked = result
    if wants_json:
        return jsonify(likes=likes, liked=liked)
    return redirect(back)


@app.route("/category/<name>")
def category(name):
    poems = filter_by_category(list_poems(sb=get_sb()), name)
    shown, page, pages = paginate(poems, _page_arg(), app.config["POEMS_PER_PAGE"])
    reader = current_reader()
    return render_template_string(
        TEMPL_CATEGORY,
        title=f"{name} Şiirleri",
        name=name,
        total=len(poems),
        poems=shown,
        page=page,
        pages=pages,
        liked_ids=_reader_likes(reader),
    )


TEMPL_CATEGORY = wrap("""
<section class="hero">
  <h1>{{ name }} Şiirleri</h1>
  <p>Bu kategoride toplam {{ total }} şiir listeleniyor.</p>
</section>
<p><a href="{{ url_for('index') }}">‹ Tüm şiirler</a></p>
{% if poems %}
<div class="grid">
  {% for p in poems %}
    {{ poem_card(p, (p.id|string) in liked_ids, reader) }}
  {% endfor %}
</div>
{% else %}
<p class="muted">Bu kategoride henüz şiir bulunmuyor.</p>
{% endif %}
{{ pager(page, pages, 'category', name=name) }}
""")


###############################################################################
# Reader accounts (Supabase Auth)
###############################################################################
@app.route("/login", methods=["GET", "POST"])
@rate_limit(max_requests=LOGIN_RATE_LIMIT, window=LOGIN_RATE_WINDOW)
def login():
    if request.method == "POST":
        try:
            res = sign_in_public(
                request.form.get("email", ""),
                request.form.get("password", ""),
                sb=get_auth_sb(),
            )
        except LoginError as exc:
            flash(str(exc))
        else:
            _start_session()
            session["sb_tokens"] = {
                "access_token": res["access_token"],
                "refresh_token": res["refresh_token"],
            }
            session["reader"] = res["profile"]
            return redirect(url_for("index"))

    return render_template_string(
        TEMPL_LOGIN, title="Giriş Yap", email=request.form.get("email", "")
    )


TEMPL_LOGIN = wrap("""
<section style="max-width:24rem;margin:2rem auto;">
  <h1>Giriş Yap</h1>
  <form method="post" class="stack">
    {{ csrf_field() }}
    <label for="email">E-posta</label>
    <input id="email" name="email" type="email" value="{{ email }}" placeholder="ornek@email.com" required>
    <label for="password">Şifre</label>
    <input id="password" name="password" type="password" placeholder="******" required>
    <p><button type="submit">Giriş Yap</button></p>
  </form>
  <p class="muted">Hesabınız yok mu? <a href="{{ url_for('register') }}">Hemen Üye Ol ›</a></p>
</section>
""")


@app.route("/register", methods=["GET", "POST"])
@rate_limit(max_requests=LOGIN_RATE_LIMIT, window=LOGIN_RATE_WINDOW)
def register():
    form = request.form
    if request.method == "POST":
        if form.get("website"):  # honeypot, humans never see it
            app.logger.info("Registration honeypot triggered from %s", client_ip())
            return redirect(url_for("login"))
        try:
            sign_up_public(
                form.get("email", ""),
                form.get("password", ""),
                form.get("full_name", ""),
                form.get("username", ""),
                sb=get_auth_sb(),
            )
        except (ValueError, LoginError) as exc:
            flash(str(exc))
        else:
            flash("Kayıt başarılı! Şimdi giriş yapabilirsiniz.")
            return redirect(url_for("login"))

    return render_template_string(TEMPL_REGISTER, title="Üye Ol", form=form)


TEMPL_REGISTER = wrap("""
<section style="max-width:24rem;margin:2rem auto;">
  <h1>Üye Ol</h1>
  <form method="post" class="stack">
    {{ csrf_field() }}
    <div class="hp" aria-hidden="true">
      <label for="website">Web sitesi</label>
      <input id="website" name="website" type="text" tabindex="-1" autocomplete="off">
    </div>
    <label for="full_name">Ad Soyad</label>
    <input id="full_name" name="full_name" value="{{ form.get('full_name', '') }}" required>
    <label for="username">Kullanıcı adı</label>
    <input id="username" name="username" value="{{ form.get('username', '') }}" placeholder="kullanici_adi" required>
    <label for="email">E-posta</label>
    <input id="email" name="email" type="email" value="{{ form.get('email', '') }}" placeholder="ornek@email.com" required>
    <label for="password">Şifre</label>
    <input id="password" name="password" type="password" placeholder="En az 6 karakter" required>
    <p><button type="submit">Üye Ol</button></p>
  </form>
  <p class="muted">Zaten üye misiniz? <a href="{{ url_for('login') }}">Giriş Yap ›</a></p>
</section>
""")


@app.route("/logout")
def logout():
    tokens = session.pop("sb_tokens", None) or {}
    session.pop("reader", None)
    if supabase_configured():
        sign_out_public(
            tokens.get("access_token"), tokens.get("refresh_token"), sb=get_auth_sb()
        )
    _end_session_if_empty()
    return redirect(url_for("index"))


###############################################################################
# Admin: sign-in + dashboard
###############################################################################
@app.route("/admin", methods=["GET", "POST"])
@rate_limit(max_requests=LOGIN_RATE_LIMIT, window=LOGIN_RATE_WINDOW, exempt=current_admin)
def admin():
    if not current_admin():
        if request.method == "POST":
            try:
                user = authenticate_admin(
                    request.form.get("username", ""),
                    request.form.get("password", ""),
                    sb=get_sb(),
                )
            except LoginError as exc:
                flash(str(exc))
            else:
                _start_session()
                session["admin"] = user
                app.logger.info("Admin %s signed in", user["username"])
                return redirect(url_for("admin"))
        return render_template_string(
            TEMPL_ADMIN_LOGIN,
            title="Yönetim Paneli",
            username=request.form.get("username", ""),
        )

    sb = get_sb()
    poems = list_poems(sb=sb)
    q = request.args.get("q", "")
    return render_template_string(
        TEMPL_ADMIN,
        title="Yönetim Paneli",
        poems=search_by_title(poems, q),
        poem_count=len(poems),
        category_count=len(list_categories(sb=sb)),
        q=q,
    )


TEMPL_ADMIN_LOGIN = wrap("""
<section style="max-width:24rem;margin:2rem auto;">
  <h1>Yönetim Paneli</h1>
  <form method="post" class="stack">
    {{ csrf_field() }}
    <label for="username">Kullanıcı adı</label>
    <input id="username" name="username" value="{{ username }}" placeholder="Kullanıcı adınız" required>
    <label for="password">Şifre</label>
    <input id="password" name="password" type="password" placeholder="Şifreniz" required>
    <p><button type="submit">Giriş Yap</button></p>
  </form>
</section>
""")

ADMIN_BAR = """
<nav style="margin:1.5rem 0;">
  <a href="{{ url_for('admin') }}">Panel</a>
  <a href="{{ url_for('poem_new') }}">Yeni Şiir</a>
  <a href="{{ url_for('admin_ai') }}">Yapay Zeka</a>
  <a href="{{ url_for('admin_categories') }}">Kategoriler</a>
  <a href="{{ url_for('admin_settings') }}">Site Ayarları</a>
  <a href="{{ url_for('admin_seo') }}">SEO</a>
  <a href="{{ url_for('admin_users') }}">Yöneticiler</a>
  <a href="{{ url_for('admin_profile') }}">Profil</a>
  <a href="{{ url_for('admin_logout') }}">Çıkış ({{ admin_user.username }})</a>
</nav>
"""


def admin_page(body: str) -> str:
    return wrap(ADMIN_BAR + body)


TEMPL_ADMIN = admin_page("""
<section class="grid">
  <div class="card"><span class="muted">Toplam Şiir</span><h2>{{ poem_count }}</h2></div>
  <div class="card"><span class="muted">Kategori</span><h2>{{ category_count }}</h2></div>
</section>
<form method="get" style="margin:1.5rem 0;">
  <input type="search" name="q" value="{{ q }}" placeholder="Şiir başlığı ara..." aria-label="Şiir ara">
</form>
<table>
  {% for p in poems %}
  <tr>
    <td><a href="{{ url_for('poem_detail', poem_id=p.id) }}">{{ p.title }}</a></td>
    <td class="muted">{{ p.category }}</td>
    <td class="muted">{{ p.date|tarih }}</td>
    <td><a href="{{ url_for('poem_edit', poem_id=p.id) }}" title="Düzenle">Düzenle</a></td>
    <td><a href="{{ url_for('poem_delete', poem_id=p.id) }}" title="Sil">Sil</a></td>
  </tr>
  {% else %}
  <tr><td class="muted">
    {% if q %}"{{ q }}" aramasına uygun şiir bulunamadı.{% else %}Henüz kütüphanede şiir yok.{% endif %}
  </td></tr>
  {% endfor %}
</table>
""")


@app.route("/admin/logout")
def admin_logout():
    session.pop("admin", None)
    _end_session_if_empty()
    return redirect(url_for("index"))


###############################################################################
# Admin: poems
###############################################################################
def _known_category(name: str | None, categories: list[str]) -> str:
    """Unknown names fall back to the first category, or `Kategorisiz`."""
    name = (name or "").strip()
    if name in categories:
        return name
    return categories[0] if categories else UNCATEGORIZED


def _poem_from_form(existing: dict | None, categories: list[str]) -> dict:
    f = request.form
    cat = _known_category(f.get("category"), categories)
    raw_date = f.get("date", "").strip()
    if not ISO_DATE_RE.match(raw_date):
        raw_date = (existing or {}).get("date") or today_iso()
    return {
        "id": (existing or {}).get("id"),
        "title": f.get("title", "").strip(),
        "content": f.get("content", "").strip(),
        "author": f.get("author", "").strip() or DEFAULT_AUTHOR,
        "category": cat,
        "likes": int((existing or {}).get("likes") or 0),
        "date": raw_date,
    }


def _poem_editor(existing: dict | None):
    sb = get_sb()
    categories = list_categories(sb=sb)
    poem = existing or {}

    if request.method == "POST":
        poem = _poem_from_form(existing, categories)
        if not poem["title"] or not poem["content"]:
            flash("Başlık ve içerik zorunludur.")
        else:
            try:
                save_poem(poem, sb=sb)
            except BACKEND_ERRORS as exc:
                app.logger.exception("Saving poem failed")
                msg = getattr(exc, "message", None) or str(exc) or "Bilinmeyen hata"
                flash(
                    f"Şiir kaydedilirken bir hata oluştu: {msg}. "
                    "Lütfen veritabanı izinlerini kontrol edin."
                )
            else:
                return redirect(url_for("admin"))

    return render_template_string(
        TEMPL_EDITOR,
        title="Şiiri Düzenle" if existing else "Yeni Şiir",
        p=poem,
        editing=existing is not None,
        categories=categories,
    )


@app.route("/admin/new", methods=["GET", "POST"])
def poem_new():
    admin_required()
    return _poem_editor(None)


@app.route("/admin/edit/<poem_id>", methods=["GET", "POST"])
def poem_edit(poem_id):
    admin_required()
    existing = get_poem(poem_id, sb=get_sb())
    if existing is None:
        flash("Şiir bulunamadı.")
        return redirect(url_for("admin"))
    return _poem_editor(existing)


TEMPL_EDITOR = admin_page("""
<h1>{{ 'Şiiri Düzenle' if editing else 'Yeni Şiir' }}</h1>
<form method="post" class="stack">
  {{ csrf_field() }}
  <label for="title">Başlık</label>
  <input id="title" name="title" value="{{ p.title or '' }}" required>
  <label for="category">Kategori</label>
  <select id="category" name="category">
    {% for c in categories %}
      <option value="{{ c }}" {{ 'selected' if c == p.category }}>{{ c }}</option>
    {% endfor %}
  </select>
  <label for="author">Şair</label>
  <input id="author" name="author" value="{{ p.author or '' }}"
         placeholder="İsim girin (Boş bırakılırsa 'Yönetici' yazılır)">
  <label for="date">Tarih</label>
  <input id="date" name="date" type="date" value="{{ p.date or '' }}">
  <label for="content">Şiir</label>
  <textarea id="content" name="content" rows="15" required>{{ p.content or '' }}</textarea>
  <p>
    <button type="submit">{{ 'Değişiklikleri Kaydet' if editing else 'Şiiri Yayınla' }}</button>
    <a href="{{ url_for('admin') }}" style="margin-left:1rem;">İptal</a>
  </p>
</form>
""")


@app.route("/admin/delete/<poem_id>", methods=["GET", "POST"])
def poem_delete(poem_id):
    admin_required()
    sb = get_sb()
    poem = get_poem(poem_id, sb=sb)
    if poem is None:
        abort(404)

    if request.method == "POST":
        if delete_poem(poem_id, sb=sb):
            flash(f'"{poem["title"]}" silindi.')
        else:
            flash("Şiir silinemedi.")
        return redirect(url_for("admin"))

    return render_template_string(TEMPL_DELETE_POEM, title="Şiiri Sil", p=poem)


TEMPL_DELETE_POEM = admin_page("""
<h2>Şiir silinsin mi?</h2>
<article style="border-left:3px solid #b91c1c;padding-left:1rem;">
  <h3>{{ p.title }}</h3>
  <div class="poem-body">{{ p.content|excerpt }}</div>
</article>
<form method="post" style="margin-top:1rem;">
  {{ csrf_field() }}
  <button class="danger">Evet, sil</button>
  <a href="{{ url_for('admin') }}" style="margin-left:1rem;">Vazgeç</a>
</form>
""")


###############################################################################
# Admin: categories
###############################################################################
@app.route("/admin/categories", methods=["GET", "POST"])
def admin_categories():
    admin_required()
    sb = get_sb()

    if request.method == "POST":
        action = request.form.get("action")
        name = request.form.get("name", "").strip()
        if action == "add":
            if add_category(name, sb=sb):
                flash(f'"{name}" eklendi.')
            else:
                flash("Bu kategori zaten mevcut veya eklenirken hata oluştu.")
        elif action == "rename":
            new = request.form.get("new_name", "").strip()
            if rename_category(name, new, sb=sb):
                flash(f'"{name}" → "{new}" olarak güncellendi.')
            else:
                flash("Güncelleme başarısız (bu isimde başka bir kategori olabilir).")
        elif action == "delete":
            if delete_category(name, sb=sb):
                flash(f'"{name}" silindi; şiirleri "{UNCATEGORIZED}" olarak işaretlendi.')
            else:
                flash(f'"{name}" silinemedi.')
        return redirect(url_for("admin_categories"))

    return render_template_string(
        TEMPL_CATEGORIES, title="Kategoriler", categories=list_categories(sb=sb)
    )


TEMPL_CATEGORIES = admin_page("""
<h1>Kategoriler</h1>
<form method="post" class="stack" style="max-width:24rem;">
  {{ csrf_field() }}
  <input type="hidden" name="action" value="add">
  <label for="name">Yeni kategori</label>
  <input id="name" name="name" placeholder="Örn: Umut" required>
  <p><button type="submit">Ekle</button></p>
</form>
<table>
  {% for c in categories %}
  <tr>
    <td>
      <form method="post" style="display:flex;gap:.5rem;">
        {{ csrf_field() }}
        <input type="hidden" name="action" value="rename">
        <input type="hidden" name="name" value="{{ c }}">
        <input name="new_name" value="{{ c }}" aria-label="Yeni ad">
        <button type="submit">Kaydet</button>
      </form>
    </td>
    <td>
      {% if c != UNCATEGORIZED %}
      <form method="post"
            onsubmit="return confirm('Bu kategoriye ait şiirler &quot;{{ UNCATEGORIZED }}&quot; olarak işaretlenecek. Devam edilsin mi?');">
        {{ csrf_field() }}
        <input type="hidden" name="action" value="delete">
        <input type="hidden" name="name" value="{{ c }}">
        <button type="submit" class="danger">Sil</button>
      </form>
      {% endif %}
    </td>
  </tr>
  {% else %}
  <tr><td class="muted">Henüz kategori yok.</td></tr>
  {% endfor %}
</table>
""")


###############################################################################
# Admin: AI poem generator
###############################################################################
@app.route("/admin/ai", methods=["GET", "POST"])
def admin_ai():
    admin_required()
    sb = get_sb()
    categories = list_categories(sb=sb)
    api_key = muse.resolve_api_key(site_settings())
    form = request.form
    draft = None

    if api_key and request.method == "POST":
        action = form.get("action")
        if action == "generate":
            prompt = form.get("prompt", "").strip()
            from_category = not prompt
            draft = muse.generate_poem(
                form.get("category", "") if from_category else prompt,
                from_category=from_category,
                api_key=api_key,
                model=app.config["GEMINI_MODEL"],
            )
            if draft is None:
                flash(
                    "Şiir oluşturulamadı. Lütfen tekrar deneyin "
                    "veya API anahtarınızı kontrol edin."
                )
            else:
                draft["category"] = form.get("category", "")
        elif action == "save":
            draft = {
                "title": form.get("title", "").strip(),
                "content": form.get("content", "").strip(),
                "category": _known_category(form.get("category"), categories),
            }
            if not draft["title"] or not draft["content"]:
                flash("Başlık ve içerik zorunludur.")
            else:
                try:
                    save_poem(
                        {
                            "id": None,
                            **draft,
                            "author": muse.AI_AUTHOR,
                            "likes": 0,
                            "date": today_iso(),
                        },
                        sb=sb,
                    )
                except BACKEND_ERRORS:
                    app.logger.exception("Saving generated poem failed")
                    flash("Şiir kaydedilirken bir hata oluştu.")
                else:
                    flash("Şiir başarıyla kaydedildi!")
                    return redirect(url_for("admin"))

    return render_template_string(
        TEMPL_AI,
        title="Yapay Zeka ile Şiir",
        has_key=bool(api_key),
        categories=categories,
        selected=form.get("category") or (categories[0] if categories else ""),
        prompt=form.get("prompt", ""),
        draft=draft,
    )


TEMPL_AI = admin_page("""
<h1>Yapay Zeka ile Şiir</h1>
{% if not has_key %}
  <div class="card">
    <p>Yapay zeka özelliğini kullanabilmek için Google Gemini API anahtarına ihtiyacınız var.</p>
    <p>Lütfen <a href="{{ url_for('admin_settings') }}">ayarlar sayfasına</a> gidip geçerli bir anahtar girin.</p>
  </div>
{% else %}
<div class="grid">
  <form method="post" class="stack card">
    {{ csrf_field() }}
    <input type="hidden" name="action" value="generate">
    <label for="category">Kategori / Tema</label>
    <select id="category" name="category">
      {% for c in categories %}<option value="{{ c }}" {{ 'selected' if c == selected }}>{{ c }}</option>{% endfor %}
    </select>
    <label for="prompt">Özel İstek (İsteğe Bağlı)</label>
    <textarea id="prompt" name="prompt" rows="4"
      placeholder="Örn: Yağmurlu bir günde pencereden bakan bir kedinin hüznü...">{{ prompt }}</textarea>
    <p><button type="submit">Şiir Oluştur</button></p>
  </form>
  {% if draft %}
  <form method="post" class="stack card">
    {{ csrf_field() }}
    <input type="hidden" name="action" value="save">
    <label for="d-title">Başlık</label>
    <input id="d-title" name="title" value="{{ draft.title }}">
    <label for="d-category">Kategori</label>
    <select id="d-category" name="category">
      {% for c in categories %}<option value="{{ c }}" {{ 'selected' if c == draft.category }}>{{ c }}</option>{% endfor %}
    </select>
    <label for="d-content">Şiir</label>
    <textarea id="d-content" name="content" rows="10">{{ draft.content }}</textarea>
    <p><button type="submit">Kaydet</button>
       <a href="{{ url_for('admin_ai') }}" style="margin-left:1rem;">İptal</a></p>
  </form>
  {% endif %}
</div>
{% endif %}
""")


###############################################################################
# Admin: site copy + SEO
###############################################################################
SETTINGS_LABELS = {
    "site_name": "Site adı",
    "footer_quote": "Alt bilgi sözü",
    "footer_copyright": "Telif yazısı",
    "hero_title": "Karşılama başlığı",
    "hero_highlight": "Vurgulu kelime",
    "hero_subtitle": "Karşılama alt yazısı",
    "about_title": "Hakkında başlığı",
    "about_quote": "Hakkında sözü",
    "about_text_primary": "Hakkında metni (1)",
    "about_text_secondary": "Hakkında metni (2)",
}
LONG_FIELDS = {"hero_subtitle", "about_text_primary", "about_text_secondary"}


@app.route("/admin/settings", methods=["GET", "POST"])
def admin_settings():
    admin_required()
    if request.method == "POST":
        if save_site_settings(request.form, sb=get_sb()):
            flash("Site ayarları başarıyla kaydedildi!")
        else:
            flash("Ayarlar kaydedilirken bir hata oluştu.")
        return redirect(url_for("admin_settings"))

    current = site_settings()
    return render_template_string(
        TEMPL_SETTINGS,
        title="Site Ayarları",
        values=current,
        labels=SETTINGS_LABELS,
        long_fields=LONG_FIELDS,
        has_key=bool(current.get("gemini_api_key")),
    )


TEMPL_SETTINGS = admin_page("""
<h1>Site Ayarları</h1>
<form method="post" class="stack">
  {{ csrf_field() }}
  {% for key, label in labels.items() %}
    <label for="{{ key }}">{{ label }}</label>
    {% if key in long_fields %}
      <textarea id="{{ key }}" name="{{ key }}" rows="4">{{ values[key] }}</textarea>
    {% else %}
      <input id="{{ key }}" name="{{ key }}" value="{{ values[key] }}">
    {% endif %}
  {% endfor %}
  <label for="gemini_api_key">Gemini API anahtarı</label>
  <input id="gemini_api_key" name="gemini_api_key" type="password" autocomplete="off"
         placeholder="{{ '•••••••• (kayıtlı, değiştirmek için yazın)' if has_key else 'AI-xxxxxxxxxxxxxxxxxxx' }}">
  <p><button type="submit">Ayarları Kaydet</button></p>
</form>
""")


@app.route("/admin/seo", methods=["GET", "POST"])
def admin_seo():
    admin_required()
    if request.method == "POST":
        og = request.form.get("og_image_url", "").strip()
        if og and not re.match(r"^https?://", og):
            flash("Geçersiz görsel adresi – http:// veya https:// ile başlamalı.")
        elif save_seo_settings(request.form, sb=get_sb()):
            flash("SEO ayarları güncellendi.")
        else:
            flash("SEO ayarları kaydedilirken bir hata oluştu.")
        return redirect(url_for("admin_seo"))

    return render_template_string(TEMPL_SEO, title="SEO Ayarları", values=seo_settings())


TEMPL_SEO = admin_page("""
<h1>SEO Ayarları</h1>
<form method="post" class="stack">
  {{ csrf_field() }}
  <label for="meta_title">Sayfa başlığı</label>
  <input id="meta_title" name="meta_title" value="{{ values.meta_title }}">
  <label for="meta_description">Açıklama</label>
  <textarea id="meta_description" name="meta_description" rows="3">{{ values.meta_description }}</textarea>
  <label for="meta_keywords">Anahtar kelimeler</label>
  <input id="meta_keywords" name="meta_keywords" value="{{ values.meta_keywords }}" placeholder="şiir, edebiyat, sanat...">
  <label for="og_image_url">Paylaşım görseli (og:image)</label>
  <input id="og_image_url" name="og_image_url" value="{{ values.og_image_url }}" placeholder="https://...">
  <p><button type="submit">SEO Ayarlarını Kaydet</button></p>
</form>
""")


###############################################################################
# Admin: accounts
###############################################################################
@app.route("/admin/profile", methods=["GET", "POST"])
@app.route("/admin/password", methods=["GET", "POST"])
def admin_profile():
    me = admin_required()
    if request.method == "POST":
        username = request.form.get("username", "").strip()
        new_pass = request.form.get("new_password", "")
        confirm = request.form.get("confirm_password", "")
        if new_pass and len(new_pass) < 4:
            flash("Şifre en az 4 karakter olmalıdır.")
        elif new_pass and new_pass != confirm:
            flash("Şifreler eşleşmiyor!")
        elif update_admin_profile(me["username"], username, new_pass, sb=get_sb()):
            session["admin"] = {**me, "username": username}
            flash("Profiliniz başarıyla güncellendi.")
            return redirect(url_for("admin"))
        else:
            flash("Güncelleme sırasında bir hata oluştu (Kullanıcı adı alınmış olabilir).")

    return render_template_string(
        TEMPL_PROFILE,
        title="Profil",
        username=request.form.get("username", me["username"]),
    )


TEMPL_PROFILE = admin_page("""
<h1>Profil</h1>
<form method="post" class="stack" style="max-width:24rem;">
  {{ csrf_field() }}
  <label for="username">Kullanıcı adı</label>
  <input id="username" name="username" value="{{ username }}" required>
  <label for="new_password">Yeni şifre</label>
  <input id="new_password" name="new_password" type="password"
         placeholder="Değiştirmek istemiyorsanız boş bırakın">
  <label for="confirm_password">Yeni şifre (tekrar)</label>
  <input id="confirm_password" name="confirm_password" type="password" placeholder="Şifreyi tekrar girin">
  <p><button type="submit">Kaydet</button>
     <a href="{{ url_for('admin') }}" style="margin-left:1rem;">İptal</a></p>
</form>
""")


@app.route("/admin/users", methods=["GET", "POST"])
def admin_users():
    me = admin_required()
    sb = get_sb()

    if request.method == "POST":
        action = request.form.get("action")
        if action == "add":
            try:
                create_admin(
                    request.form.get("username", ""),
                    request.form.get("password", ""),
                    sb=sb,
                )
            except ValueError as exc:
                flash(f"Hata: {exc}")
            except BACKEND_ERRORS:
                app.logger.exception("Creating admin failed")
                flash("Hata: yönetici eklenemedi.")
            else:
                flash("Yeni yönetici eklendi!")
        elif action == "delete":
            if not delete_admin(request.form.get("id"), current_id=me["id"], sb=sb):
                flash("Bu kullanıcı silinemedi.")
        return redirect(url_for("admin_users"))

    return render_template_string(
        TEMPL_USERS, title="Yöneticiler", admins=list_admins(sb=sb), me=me
    )


TEMPL_USERS = admin_page("""
<h1>Yöneticiler</h1>
<form method="post" class="stack" style="max-width:24rem;">
  {{ csrf_field() }}
  <input type="hidden" name="action" value="add">
  <label for="username">Kullanıcı adı</label>
  <input id="username" name="username" required>
  <label for="password">Şifre</label>
  <input id="password" name="password" type="password" required>
  <p><button type="submit">Ekle</button></p>
</form>
<table>
  {% for u in admins %}
  <tr>
    <td>{{ u.username }}{% if u.id|string == me.id|string %} <span class="muted">(siz)</span>{% endif %}</td>
    <td>
      {% if u.id|string != me.id|string %}
      <form method="post" onsubmit="return confirm('Bu kullanıcıyı silmek istediğinize emin misiniz?');">
        {{ csrf_field() }}
        <input type="hidden" name="action" value="delete">
        <input type="hidden" name="id" value="{{ u.id }}">
        <button type="submit" class="danger" title="Kullanıcıyı Sil">Sil</button>
      </form>
      {% endif %}
    </td>
  </tr>
  {% endfor %}
</table>
""")


###############################################################################
# RSS feed
###############################################################################
def _rfc2822(iso: str | None) -> str:
    """ISO date(time) → RFC 2822; unparsable values pass through."""
    try:
        dt = datetime.fromisoformat(str(iso))
    except (TypeError, ValueError):
        return iso or ""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.strftime(RFC2822_FMT)


def _rss(poems, *, title: str, feed_url: str, site_url: str) -> str:
    items = []
    for p in poems:
        link = url_for("poem_detail", poem_id=p["id"], _external=True)
        body = escape(p.get("content") or "").replace("\n", "<br>")
        items.append(
            f"""
        <item>
          <title>{escape(p.get("title") or "")}</title>
          <link>{link}</link>
          <guid isPermaLink="true">{link}</guid>
          <pubDate>{_rfc2822(p.get("date"))}</pubDate>
          <author>{escape(p.get("author") or "")}</author>
          <category>{escape(p.get("category") or "")}</category>
          <description><![CDATA[{body}]]></description>
        </item>"""
        )

    return f"""<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0"
     xmlns:atom="http://www.w3.org/2005/Atom">
  <channel>
    <title>{escape(title)}</title>
    <link>{site_url}</link>
    <description>{escape(title)} – RSS</description>
    <generator>beyazbulut</generator>
    <lastBuildDate>{_rfc2822(datetime.now(timezone.utc).isoformat())}</lastBuildDate>
    <atom:link href="{feed_url}"
               rel="self"
               type="application/rss+xml" />
    {"".join(items)}
  </channel>
</rss>"""


@app.route("/rss")
def rss():
    xml = _rss(
        list_poems(sb=get_sb())[:RSS_LIMIT],
        title=site_settings()["site_name"],
        feed_url=url_for("rss", _external=True),
        site_url=request.url_root.rstrip("/"),
    )
    return app.response_class(xml, mimetype="application/rss+xml")


###############################################################################
# Resources
###############################################################################
@app.route("/favicon.svg")
def favicon():
    """First letter of the site name on the accent colour."""
    letter = escape((site_settings()["site_name"] or "B")[0].upper())
    svg = f'''<svg xmlns="http://www.w3.org/2000/svg"
                    width="64" height="64" viewBox="0 0 64 64">
      <rect width="64" height="64" rx="32" ry="32" fill="{ACCENT}"/>
      <text x="32" y="44" text-anchor="middle"
            font-family="Georgia,serif" font-size="36" fill="#ffffff">{letter}</text>
    </svg>'''
    return Response(
        svg,
        mimetype="image/svg+xml",
        headers={"Cache-Control": "public, max-age=86400"},
    )


@app.route("/robots.txt")
def robots():
    rules = (
        "User-agent: *\n"
        "Allow: /\n"
        "Disallow: /admin\n"
        "Disallow: /login\n"
        "Disallow: /register\n"
    )
    return (
        Response(rules, mimetype="text/plain"),
        200,
        {"Cache-Control": "public, max-age=86400"},
    )


###############################################################################
# Error pages
###############################################################################
@app.errorhandler(404)
def not_found(exc):
    return render_template_string(TEMPL_404, title="Sayfa bulunamadı"), 404


@app.errorhandler(500)
def internal_error(exc):
    return render_template_string(TEMPL_500, title="Sunucu hatası"), 500


def backend_unavailable(exc):
    app.logger.exception("Backend request failed")
    return render_template_string(TEMPL_503, title="Geçici sorun"), 503


for _exc in BACKEND_ERRORS:
    app.register_error_handler(_exc, backend_unavailable)


TEMPL_404 = wrap("""
<section class="hero">
  <h1>Sayfa bulunamadı</h1>
  <p>Aradığınız sayfa ya da şiir mevcut değil.
     <a href="{{ url_for('index') }}">Ana sayfaya dön</a>.</p>
</section>
""")

TEMPL_500 = wrap("""
<section class="hero">
  <h1>Sunucu hatası</h1>
  <p>Bir şeyler ters gitti. Lütfen biraz sonra tekrar deneyin.</p>
</section>
""")

TEMPL_503 = wrap("""
<section class="hero">
  <h1>Veritabanına ulaşılamadı</h1>
  <p>İçerik şu anda yüklenemiyor. Lütfen sayfayı yenileyip tekrar deneyin.</p>
</section>
""")


###############################################################################
# main
###############################################################################
if __name__ == "__main__":
    app.run(debug=True)
