"""Supabase client integration.

Query builders are chained (``client.table("todos").select("*").eq(...)``)
and only the terminal ``execute`` is reported, as a ``db.execute`` span whose
target is the PostgREST URL of the table or RPC function.
"""
from __future__ import annotations

from typing import Any, Optional

from ..models import Integration, IntegrationOptions, InterceptedCall

CHAIN_METHODS = ("table", "from_", "rpc", "schema")
TERMINAL_METHODS = ("execute",)


def rest_url(url: str) -> str:
    """Return the PostgREST base for a project URL."""
    base = url.rstrip("/")
    if base.endswith("/rest/v1"):
        return base
    return f"{base}/rest/v1"


def supabase_integration(
    url: Optional[str] = None,
    *,
    name: str = "supabase",
    options: Any = None,
) -> Integration:
    base = rest_url(url) if url else "supabase://"

    def target_for(call: InterceptedCall) -> str:
        chain = call.context.get("chain", ())
        resource = call.context.get("resource", "")
        if chain and chain[0] == "rpc":
            resource = f"rpc/{resource}"
        if base.endswith("//"):
            return f"{base}{resource}"
        return f"{base}/{resource}" if resource else base

    return Integration(
        name=name,
        methods=(),
        options=IntegrationOptions.coerce(options),
        chain_methods=CHAIN_METHODS,
        chained=TERMINAL_METHODS,
        target_for=target_for,
        span_prefix="db",
    )


__all__ = ["supabase_integration", "rest_url"]
