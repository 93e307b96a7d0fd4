"""Call interception: wraps client methods so each call reports to a sink."""
from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from .models import CallOutcome, Integration, InterceptedCall
from .sinks import MonitoringSink

logger = logging.getLogger(__name__)

DEFAULT_MAX_ARGUMENT_LENGTH = 200

_SCALAR_TYPES = (str, bytes, int, float, bool, type(None), list, dict, tuple, set)


class CallInterceptor:
    """Wraps methods of a target on behalf of one integration.

    The wrapper records a start timestamp, invokes the original, and reports
    the outcome to ``sink`` according to the integration's options. Return
    values and raised errors reach the caller unchanged. When the original
    returns an awaitable, timing is attached to its completion.
    """

    def __init__(
        self,
        integration: Integration,
        sink: MonitoringSink,
        *,
        max_argument_length: int = DEFAULT_MAX_ARGUMENT_LENGTH,
    ) -> None:
        self.integration = integration
        self.sink = sink
        self.max_argument_length = max_argument_length

    def instrument(self, target: Any) -> "InstrumentedClient":
        """Return a proxy of ``target`` whose intercepted methods report calls."""
        return InstrumentedClient(target, self)

    def wrap(
        self,
        func: Callable[..., Any],
        method_name: str,
        owner: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Callable[..., Any]:
        """Wrap ``func`` so that each invocation is reported."""

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                call = self._begin(method_name, args, kwargs, owner, context)
                if call is None:
                    return await func(*args, **kwargs)
                try:
                    result = await func(*args, **kwargs)
                except Exception as error:
                    self._finish(call, CallOutcome.failure(error))
                    raise
                self._finish(call, CallOutcome.success(result))
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            call = self._begin(method_name, args, kwargs, owner, context)
            if call is None:
                return func(*args, **kwargs)
            try:
                result = func(*args, **kwargs)
            except Exception as error:
                self._finish(call, CallOutcome.failure(error))
                raise
            if isinstance(result, asyncio.Future):
                result.add_done_callback(functools.partial(self._finish_future, call))
                return result
            if inspect.iscoroutine(result):
                return self._finish_awaitable(call, result)
            if inspect.isawaitable(result):
                return PendingResult(result, self, call)
            self._finish(call, CallOutcome.success(result))
            return result

        return wrapper

    def wrap_chain(
        self,
        func: Callable[..., Any],
        method_name: str,
        context: Dict[str, Any],
    ) -> Callable[..., Any]:
        """Wrap a builder method whose result continues the call chain."""

        @functools.wraps(func)
        def chain_wrapper(*args: Any, **kwargs: Any) -> Any:
            result = func(*args, **kwargs)
            if isinstance(result, _SCALAR_TYPES) or inspect.isawaitable(result):
                return result
            next_context = dict(context)
            next_context["chain"] = tuple(context.get("chain", ())) + (method_name,)
            if method_name in self.integration.chain_methods:
                resource = args[0] if args else kwargs.get("name", kwargs.get("table_name"))
                if isinstance(resource, str):
                    next_context["resource"] = resource
            return InstrumentedClient(result, self, context=next_context, chained=True)

        return chain_wrapper

    def _begin(
        self,
        method_name: str,
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
        owner: Any,
        context: Optional[Dict[str, Any]],
    ) -> Optional[InterceptedCall]:
        call = InterceptedCall(
            integration=self.integration.name,
            method_name=method_name,
            args=tuple(args),
            kwargs=dict(kwargs),
            owner=owner,
            context=dict(context or {}),
        )
        try:
            call.target = str(self.integration.target_for(call) or method_name)
        except Exception:
            logger.exception(
                "Target resolution failed for %s.%s", self.integration.name, method_name
            )
            call.target = method_name

        predicate = self.integration.filter
        if predicate is not None and not predicate.should_report(call.target):
            logger.debug(
                "Integration %s skipping %s (%s filtered by %r)",
                self.integration.name,
                method_name,
                call.target,
                predicate,
            )
            return None
        return call

    async def _finish_awaitable(self, call: InterceptedCall, awaitable: Any) -> Any:
        try:
            result = await awaitable
        except Exception as error:
            self._finish(call, CallOutcome.failure(error))
            raise
        self._finish(call, CallOutcome.success(result))
        return result

    def _finish_future(self, call: InterceptedCall, future: "asyncio.Future[Any]") -> None:
        if future.cancelled():
            logger.debug("Call %s cancelled; not reported", call.method_name)
            return
        error = future.exception()
        if error is not None:
            self._finish(call, CallOutcome.failure(error))
        else:
            self._finish(call, CallOutcome.success(future.result()))

    def _finish(self, call: InterceptedCall, outcome: CallOutcome) -> None:
        if call.outcome is not None:
            return
        call.finish(outcome)
        self._report(call)

    def _report(self, call: InterceptedCall) -> None:
        integration = self.integration
        options = integration.options
        span_name = integration.span_name(call.method_name)
        duration_ms = call.duration_ms
        data: Dict[str, Any] = {
            "integration": integration.name,
            "operation": span_name,
            "target": call.target,
            "duration_ms": round(duration_ms, 3),
            "arguments": call.describe_arguments(self.max_argument_length),
        }
        if call.context.get("chain"):
            data["chain"] = ".".join(call.context["chain"] + (call.method_name,))
        if call.context.get("resource"):
            data["resource"] = call.context["resource"]
        status = "ok" if call.succeeded else "error"

        if call.succeeded:
            if options.breadcrumbs:
                self._emit(
                    "emit_breadcrumb",
                    {
                        "category": integration.name,
                        "message": span_name,
                        "level": "info",
                        "data": data,
                    },
                )
        elif options.errors:
            self._emit("emit_error", call.outcome.error, data)

        if options.tracing:
            self._emit(
                "emit_span",
                span_name,
                duration_ms,
                {"integration": integration.name, "status": status, "target": call.target},
            )

    def _emit(self, method: str, *args: Any) -> None:
        try:
            getattr(self.sink, method)(*args)
        except Exception:
            logger.exception(
                "Monitoring sink %s failed during %s for integration %s",
                type(self.sink).__name__,
                method,
                self.integration.name,
            )


class PendingResult:
    """Stands in for an awaitable returned by a synchronous method.

    Awaiting it, or entering it with ``async with``, drives the original
    object and reports the call once that completes. Objects like aiohttp's
    request context managers keep both protocols this way. Any other
    attribute is read from the original.
    """

    __slots__ = ("_cw_result", "_cw_interceptor", "_cw_call")

    def __init__(self, result: Any, interceptor: CallInterceptor, call: InterceptedCall) -> None:
        self._cw_result = result
        self._cw_interceptor = interceptor
        self._cw_call = call

    @property
    def wrapped(self) -> Any:
        return self._cw_result

    def __await__(self):
        return self._cw_interceptor._finish_awaitable(self._cw_call, self._cw_result).__await__()

    async def __aenter__(self) -> Any:
        # the call ends when the context is entered; the block body belongs to the caller
        try:
            entered = await self._cw_result.__aenter__()
        except Exception as error:
            self._cw_interceptor._finish(self._cw_call, CallOutcome.failure(error))
            raise
        self._cw_interceptor._finish(self._cw_call, CallOutcome.success(entered))
        return entered

    async def __aexit__(self, exc_type, exc, tb) -> Any:
        return await self._cw_result.__aexit__(exc_type, exc, tb)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_cw_"):
            raise AttributeError(name)
        return getattr(self._cw_result, name)

    def __repr__(self) -> str:
        return f"<PendingResult {self._cw_call.method_name} of {self._cw_result!r}>"


class InstrumentedClient:
    """Proxy exposing the wrapped client's interface with intercepted methods.

    The wrapped object is never modified. Attributes named by the integration
    are returned wrapped; everything else passes through. Context managers,
    iteration, calls, truthiness and equality are forwarded too. Entering a
    ``with`` block yields the proxy whenever the client would yield itself.
    """

    __slots__ = ("_cw_wrapped", "_cw_interceptor", "_cw_context", "_cw_chained")

    def __init__(
        self,
        wrapped: Any,
        interceptor: CallInterceptor,
        *,
        context: Optional[Dict[str, Any]] = None,
        chained: bool = False,
    ) -> None:
        object.__setattr__(self, "_cw_wrapped", wrapped)
        object.__setattr__(self, "_cw_interceptor", interceptor)
        object.__setattr__(self, "_cw_context", context or {})
        object.__setattr__(self, "_cw_chained", chained)

    @property
    def integration_names(self) -> Tuple[str, ...]:
        """Names of every integration applied, innermost first."""
        inner = self._cw_wrapped
        names: Tuple[str, ...] = ()
        if isinstance(inner, InstrumentedClient):
            names = inner.integration_names
        return names + (self._cw_interceptor.integration.name,)

    @property
    def wrapped(self) -> Any:
        return self._cw_wrapped

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_cw_"):
            # slots not populated yet (copy/unpickle)
            raise AttributeError(name)
        value = getattr(self._cw_wrapped, name)
        if not callable(value):
            return value
        interceptor = self._cw_interceptor
        integration = interceptor.integration
        if self._cw_chained:
            if name in integration.chained:
                return interceptor.wrap(value, name, self._cw_wrapped, self._cw_context)
            return interceptor.wrap_chain(value, name, self._cw_context)
        if name in integration.methods:
            return interceptor.wrap(value, name, self._cw_wrapped, self._cw_context)
        if name in integration.chain_methods:
            return interceptor.wrap_chain(value, name, self._cw_context)
        return value

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._cw_wrapped, name, value)

    def __dir__(self):
        return sorted(set(dir(self._cw_wrapped)) | {"integration_names", "wrapped"})

    def __enter__(self) -> Any:
        entered = self._cw_wrapped.__enter__()
        return self if entered is self._cw_wrapped else entered

    def __exit__(self, exc_type, exc, tb) -> Any:
        return self._cw_wrapped.__exit__(exc_type, exc, tb)

    async def __aenter__(self) -> Any:
        entered = await self._cw_wrapped.__aenter__()
        return self if entered is self._cw_wrapped else entered

    async def __aexit__(self, exc_type, exc, tb) -> Any:
        return await self._cw_wrapped.__aexit__(exc_type, exc, tb)

    def __iter__(self):
        return iter(self._cw_wrapped)

    def __len__(self) -> int:
        return len(self._cw_wrapped)

    def __bool__(self) -> bool:
        return bool(self._cw_wrapped)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._cw_wrapped(*args, **kwargs)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, InstrumentedClient):
            other = other.wrapped
        return self._cw_wrapped == other

    def __hash__(self) -> int:
        return hash(self._cw_wrapped)

    def __repr__(self) -> str:
        return f"<InstrumentedClient {self._cw_interceptor.integration.name} of {self._cw_wrapped!r}>"


def unwrap(client: Any) -> Any:
    """Return the original object underneath any number of instrumented proxies."""
    while isinstance(client, InstrumentedClient):
        client = client.wrapped
    return client


__all__ = [
    "CallInterceptor",
    "DEFAULT_MAX_ARGUMENT_LENGTH",
    "InstrumentedClient",
    "PendingResult",
    "unwrap",
]
