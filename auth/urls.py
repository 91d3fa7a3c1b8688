from __future__ import annotations

import urllib.parse


def query_params(url: str) -> dict[str, str]:
    parsed = urllib.parse.urlparse(url)
    return {
        key: values[0]
        for key, values in urllib.parse.parse_qs(parsed.query, keep_blank_values=True).items()
    }


def remove_query_params(url: str, keys: tuple[str, ...]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key in keys:
        existing.pop(key, None)

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))


def origin_redirect_uri(url: str) -> str:
    """Return the origin of ``url`` with a trailing slash."""
    parsed = urllib.parse.urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise RuntimeError(f"Redirect URI must be an absolute URL: {url!r}")
    return f"{parsed.scheme}://{parsed.netloc}/"
