"""Roboflow inference client integration (``InferenceHTTPClient``)."""
from __future__ import annotations

from typing import Any

from ..models import Integration, IntegrationOptions, InterceptedCall

DEFAULT_API_URL = "https://detect.roboflow.com"
INFERENCE_METHODS = ("infer", "infer_async", "run_workflow", "run_workflow_async")


def roboflow_integration(
    api_url: str = DEFAULT_API_URL,
    *,
    name: str = "roboflow",
    options: Any = None,
) -> Integration:
    base = api_url.rstrip("/")

    def target_for(call: InterceptedCall) -> str:
        model = call.kwargs.get("model_id") or call.kwargs.get("workflow_id")
        if model is None and len(call.args) > 1:
            model = call.args[1]
        if model:
            return f"{base}/{model}"
        return base

    return Integration(
        name=name,
        methods=INFERENCE_METHODS,
        options=IntegrationOptions.coerce(options),
        target_for=target_for,
        span_prefix="inference",
    )


__all__ = ["roboflow_integration", "DEFAULT_API_URL"]
