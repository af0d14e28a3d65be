"""Tor SOCKS route helpers.

- socks5h:// = hostname resolved by the proxy (required for .onion)
- socks5://  = hostname resolved locally (leaks DNS, cannot resolve .onion)
"""

from urllib.parse import urlparse

from torsnap.utils.config import Settings, get_settings


def get_socks_proxy_url(
    settings: Settings | None = None,
    *,
    resolve_through_tor: bool | None = None,
) -> str:
    """Build the SOCKS proxy URL for the Tor route.

    Args:
        settings: Settings to read the Tor section from.
        resolve_through_tor: Override for remote DNS resolution.

    Returns:
        Proxy URL such as ``socks5h://127.0.0.1:9050``.
    """
    tor = (settings or get_settings()).tor
    remote_dns = tor.resolve_through_tor if resolve_through_tor is None else resolve_through_tor
    protocol = "socks5h" if remote_dns else "socks5"
    return f"{protocol}://{tor.socks_host}:{tor.socks_port}"


def get_proxy_dict(settings: Settings | None = None) -> dict[str, str]:
    """Proxy mapping for requests-style clients (curl_cffi)."""
    proxy_url = get_socks_proxy_url(settings)
    return {"http": proxy_url, "https": proxy_url}


def get_browser_proxy(settings: Settings | None = None) -> dict[str, str]:
    """Proxy settings for a Chromium launch.

    Chromium resolves hostnames through a socks5 proxy by itself, and
    rejects the socks5h scheme, so the plain scheme is used here.
    """
    return {"server": get_socks_proxy_url(settings, resolve_through_tor=False)}


def strip_scheme(url: str) -> str:
    """Drop the leading ``scheme://`` of a URL, if any."""
    parsed = urlparse(url)
    if parsed.scheme and url.startswith(f"{parsed.scheme}://"):
        return url[len(parsed.scheme) + 3 :]
    return url


def forwarded_url(target_url: str, settings: Settings | None = None) -> str:
    """URL of ``target_url`` as served by the local forwarding proxy."""
    proxy = (settings or get_settings()).proxy
    return f"{proxy.base_url}/onion/{strip_scheme(target_url)}"
