"""``vecs`` vector-store client integration."""
from __future__ import annotations

from typing import Any

from ..models import Integration, IntegrationOptions, InterceptedCall

CLIENT_METHODS = ("list_collections", "delete_collection")
COLLECTION_FACTORIES = ("get_or_create_collection", "get_collection")
COLLECTION_METHODS = ("upsert", "query", "fetch", "delete", "create_index")


def _target(call: InterceptedCall) -> str:
    resource = call.context.get("resource")
    if resource is None and call.method_name == "delete_collection" and call.args:
        resource = call.args[0]
    return f"vecs://{resource}" if resource else "vecs://"


def vecs_integration(*, name: str = "vecs", options: Any = None) -> Integration:
    return Integration(
        name=name,
        methods=CLIENT_METHODS,
        options=IntegrationOptions.coerce(options),
        chain_methods=COLLECTION_FACTORIES,
        chained=COLLECTION_METHODS,
        target_for=_target,
        span_prefix="vecs",
    )


__all__ = ["vecs_integration"]
