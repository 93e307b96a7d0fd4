"""Ordered registry of integrations applied to target clients."""
from __future__ import annotations

import functools
import logging
import weakref
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .interceptor import DEFAULT_MAX_ARGUMENT_LENGTH, CallInterceptor, InstrumentedClient, unwrap
from .models import DuplicateIntegrationError, Integration, IntegrationConfigError
from .sinks import MonitoringSink

logger = logging.getLogger(__name__)


class IntegrationRegistry:
    """Holds integrations in registration order and applies them to clients.

    Applying never mutates the target: each integration wraps the previous
    result, and :meth:`apply_all` returns the outermost proxy. Applying an
    integration name to a client that already carries it raises
    :class:`DuplicateIntegrationError`.
    """

    def __init__(
        self,
        sink: MonitoringSink,
        *,
        max_argument_length: int = DEFAULT_MAX_ARGUMENT_LENGTH,
    ) -> None:
        self.sink = sink
        self.max_argument_length = max_argument_length
        self._integrations: List[Integration] = []
        # id(original target) -> (weak reference to it, names applied)
        self._applied: Dict[int, Tuple[weakref.ref, Set[str]]] = {}

    def __iter__(self) -> Iterator[Integration]:
        return iter(self._integrations)

    def __len__(self) -> int:
        return len(self._integrations)

    def __contains__(self, name: object) -> bool:
        return any(integration.name == name for integration in self._integrations)

    @property
    def names(self) -> List[str]:
        return [integration.name for integration in self._integrations]

    def get(self, name: str) -> Optional[Integration]:
        for integration in self._integrations:
            if integration.name == name:
                return integration
        return None

    def register(self, integration: Integration) -> None:
        """Add ``integration``; duplicate names fail fast."""
        if not isinstance(integration, Integration):
            raise IntegrationConfigError(
                f"Expected an Integration, got {type(integration).__name__}"
            )
        if integration.name in self:
            raise DuplicateIntegrationError(
                f"Integration '{integration.name}' is already registered"
            )
        self._warn_on_overlap(integration)
        self._integrations.append(integration)
        logger.debug(
            "Registered integration %s (methods=%s, options=%s)",
            integration.name,
            ", ".join(integration.methods + integration.chained),
            integration.options.as_dict(),
        )

    def apply(self, integration: Integration, target: Any) -> InstrumentedClient:
        """Wrap ``target`` with a single integration."""
        applied = self._applied_names(target)
        if integration.name in applied:
            raise DuplicateIntegrationError(
                f"Integration '{integration.name}' is already applied to {unwrap(target)!r}"
            )
        interceptor = CallInterceptor(
            integration,
            self.sink,
            max_argument_length=self.max_argument_length,
        )
        instrumented = interceptor.instrument(target)
        root = unwrap(target)
        self._remember(root, integration.name)
        logger.info("Applied integration %s to %s", integration.name, type(root).__name__)
        return instrumented

    def apply_all(self, target: Any) -> Any:
        """Apply every registered integration, in order, and return the result."""
        current = target
        for integration in self._integrations:
            current = self.apply(integration, current)
        return current

    def _applied_names(self, target: Any) -> Set[str]:
        names: Set[str] = set()
        if isinstance(target, InstrumentedClient):
            names.update(target.integration_names)
        root = unwrap(target)
        entry = self._applied.get(id(root))
        if entry is not None and entry[0]() is root:
            names.update(entry[1])
        return names

    def _remember(self, root: Any, name: str) -> None:
        key = id(root)
        entry = self._applied.get(key)
        if entry is None or entry[0]() is not root:
            try:
                ref = weakref.ref(root, functools.partial(self._forget, key))
            except TypeError:
                # only wrappers can reveal earlier applications to this object
                logger.debug("%s does not support weak references", type(root).__name__)
                return
            entry = (ref, set())
            self._applied[key] = entry
        entry[1].add(name)

    def _forget(self, key: int, ref: weakref.ref) -> None:
        entry = self._applied.get(key)
        if entry is not None and entry[0] is ref:
            del self._applied[key]

    def _warn_on_overlap(self, integration: Integration) -> None:
        if integration.filter is not None:
            return
        for existing in self._integrations:
            if existing.filter is not None:
                continue
            shared = set(existing.methods + existing.chained) & set(
                integration.methods + integration.chained
            )
            if shared:
                logger.warning(
                    "Integrations %s and %s both intercept %s without a filter; "
                    "calls may be reported twice",
                    existing.name,
                    integration.name,
                    ", ".join(sorted(shared)),
                )


__all__ = ["IntegrationRegistry"]
