from __future__ import annotations

from urllib.parse import urlparse


def safe_redirect(
    want_url: str,
    *,
    is_admin: bool,
    base_url: str,
    default: str = "/",
    admin_marker: str = "/admin/",
) -> str:
    """
    Pick the post-login destination.

    Only relative paths and URLs on our own public origin are honoured, and
    non-admins never land in the admin area.
    """
    target = (want_url or "").strip()
    if not target:
        return default

    parsed = urlparse(target)
    if parsed.scheme or parsed.netloc or target.startswith("//") or target.startswith("\\"):
        own = urlparse(base_url)
        if (parsed.scheme, parsed.netloc) != (own.scheme, own.netloc):
            return default
    elif not target.startswith("/"):
        return default

    if not is_admin and admin_marker and admin_marker in parsed.path:
        return default

    return target
