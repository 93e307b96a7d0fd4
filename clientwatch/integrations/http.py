"""HTTP session integration (``requests``/``httpx`` style clients)."""
from __future__ import annotations

from typing import Any, Iterable

from ..filters import url_prefix
from ..models import Integration, IntegrationOptions, InterceptedCall

HTTP_METHODS = ("request", "get", "post", "put", "patch", "delete", "head", "options")


def request_url(call: InterceptedCall) -> str:
    """Extract the URL from ``request(method, url)`` or ``get(url)`` calls."""
    if "url" in call.kwargs:
        return str(call.kwargs["url"])
    index = 1 if call.method_name == "request" else 0
    if len(call.args) > index:
        return str(call.args[index])
    return call.method_name


def http_integration(
    exclude_prefixes: Iterable[str] = (),
    *,
    name: str = "http",
    options: Any = None,
) -> Integration:
    """HTTP-level tracing that skips URLs another integration already reports.

    Pass the Supabase project URL in ``exclude_prefixes`` so requests made by
    the Supabase client are reported by the Supabase integration only.
    """
    prefixes = tuple(exclude_prefixes)
    return Integration(
        name=name,
        methods=HTTP_METHODS,
        options=IntegrationOptions.coerce(options),
        filter=~url_prefix(*prefixes) if prefixes else None,
        target_for=request_url,
        span_prefix="http.client",
    )


__all__ = ["http_integration", "request_url"]
