"""Non-API pages: robots.txt, the Halloween landing page and the SPA fallback."""

import logging
import re
from pathlib import Path

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse

logger = logging.getLogger(__name__)

router = APIRouter()

ROBOTS_TXT = """User-agent: *
Disallow: /api/
Disallow: /api/images/
Disallow: /api/mobile-share/
Disallow: /sogni/
Disallow: /auth/
Crawl-delay: 86400

# Specifically block image hosting
User-agent: *
Disallow: /api/images/

# Block common crawlers from API endpoints
User-agent: Googlebot
Disallow: /api/

User-agent: Bingbot
Disallow: /api/

User-agent: Slurp
Disallow: /api/
"""

HALLOWEEN_TITLE = "🎃 Sogni Halloween Photobooth Costume Party 👻"
HALLOWEEN_DESCRIPTION = (
    "Create the perfect Halloween costume using AI! Win 40,000 Premium Sparks. "
    "Share your creation and enter the contest. Deadline: Oct 27"
)
HALLOWEEN_URL = "https://photobooth.sogni.ai/halloween"

# (pattern, replacement) applied in order to the SPA's index.html
HALLOWEEN_META_REWRITES = [
    (re.compile(r"<title>.*?</title>", re.S), f"<title>{HALLOWEEN_TITLE}</title>"),
    (
        re.compile(r'<meta\s+property="og:title"\s+content="[^"]*"\s*/?>', re.S),
        f'<meta property="og:title" content="{HALLOWEEN_TITLE}" />',
    ),
    (
        re.compile(r'<meta\s+property="og:description"\s+content="[^"]*"\s*/?>', re.S),
        f'<meta property="og:description" content="{HALLOWEEN_DESCRIPTION}" />',
    ),
    (
        re.compile(r'<meta\s+property="og:url"\s+content="[^"]*"\s*/?>', re.S),
        f'<meta property="og:url" content="{HALLOWEEN_URL}" />',
    ),
    (
        re.compile(r'<meta\s+name="twitter:title"\s+content="[^"]*"\s*/?>', re.S),
        f'<meta name="twitter:title" content="{HALLOWEEN_TITLE}" />',
    ),
    (
        re.compile(r'<meta\s+name="twitter:description"\s+content="[^"]*"\s*/?>', re.S),
        f'<meta name="twitter:description" content="{HALLOWEEN_DESCRIPTION}" />',
    ),
    (
        re.compile(r'<meta\s+property="twitter:url"\s+content="[^"]*"\s*/?>', re.S),
        f'<meta property="twitter:url" content="{HALLOWEEN_URL}" />',
    ),
]


def apply_halloween_meta(html: str) -> str:
    """Swap the page title and social meta tags for the Halloween event copy."""
    for pattern, replacement in HALLOWEEN_META_REWRITES:
        html = pattern.sub(lambda _match: replacement, html, count=1)
    return html


def _static_dir(request: Request) -> Path:
    return request.app.state.settings.static_dir


@router.get("/robots.txt", response_class=PlainTextResponse)
async def robots_txt():
    return PlainTextResponse(ROBOTS_TXT)


@router.get("/halloween", response_class=HTMLResponse)
async def halloween(request: Request):
    index_path = _static_dir(request) / "index.html"
    try:
        html = index_path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Halloween page: cannot read {index_path}: {e}")
        return HTMLResponse(f"Error loading page: {e}", status_code=500)
    return HTMLResponse(apply_halloween_meta(html))


@router.get("/{full_path:path}", include_in_schema=False)
async def spa_fallback(full_path: str, request: Request):
    """Serve a built asset if it exists, otherwise the SPA's index.html."""
    static_dir = _static_dir(request).resolve()
    if full_path:
        candidate = (static_dir / full_path).resolve()
        if candidate.is_file() and static_dir in candidate.parents:
            return FileResponse(candidate)

    index_path = static_dir / "index.html"
    if not index_path.is_file():
        raise HTTPException(status_code=404, detail="Not found")
    logger.debug(f"Serving index.html for path: /{full_path}")
    return FileResponse(index_path)
