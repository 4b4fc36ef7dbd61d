"""Hook bus registry — holds subscribers per named extension point.

Security contract:
- Subscribers are registered against a declared point and kind (filter/action)
- A kind mismatch is refused at registration, never discovered at dispatch
- Subscriber failures are isolated: logged, error-counted, never propagated
- Subscribers that keep failing are auto-disabled
- Action subscribers receive deep copies; they cannot mutate shared state
- All subscriber activity is audit-logged
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class HookKind(str, Enum):
    """Contract of an extension point."""
    FILTER = "filter"   # value in -> value out
    ACTION = "action"   # notify only, return value ignored


class SubscriberStatus(str, Enum):
    """Subscriber lifecycle states."""
    ENABLED = "enabled"     # Receiving dispatches
    DISABLED = "disabled"   # Removed from dispatch by admin
    ERROR = "error"         # Crashed too many times, auto-disabled


@dataclass
class Subscriber:
    """Registry entry for one callback on one hook point."""
    hook: str
    kind: HookKind
    callback: Callable[..., Any]
    name: str
    priority: int = 10
    status: SubscriberStatus = SubscriberStatus.ENABLED
    error_count: int = 0
    last_error: str = ""
    registered_at: float = field(default_factory=time.time)
    seq: int = 0


# Auto-disable threshold
_MAX_ERRORS = 10


class HookBus:
    """Singleton registry for all hook subscribers.

    Dispatch order within a point: ascending priority, then registration order.
    """

    _instance: HookBus | None = None

    def __new__(cls) -> HookBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._subscribers: dict[str, list[Subscriber]] = {}
            cls._instance._audit_log: list[dict[str, Any]] = []
            cls._instance._seq = 0
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset singleton for testing."""
        cls._instance = None

    @property
    def audit_log(self) -> list[dict[str, Any]]:
        return list(self._audit_log)

    def _audit(self, action: str, hook: str, subscriber: str, **details: Any) -> None:
        """Record an audit event."""
        entry = {
            "timestamp": time.time(),
            "action": action,
            "hook": hook,
            "subscriber": subscriber,
            **details,
        }
        self._audit_log.append(entry)
        logger.debug("Hook audit: %s %s %s %s", action, hook, subscriber, details)

    # ── Registration ─────────────────────────────────────────────────────

    def subscribe(
        self,
        hook: str,
        callback: Callable[..., Any],
        *,
        kind: HookKind,
        priority: int = 10,
        name: str | None = None,
    ) -> Subscriber:
        """Attach a callback to a hook point."""
        existing = self._subscribers.get(hook)
        if existing and existing[0].kind != kind:
            raise ValueError(
                f"Hook '{hook}' is a {existing[0].kind.value}, not a {kind.value}"
            )
        self._seq += 1
        sub = Subscriber(
            hook=hook,
            kind=kind,
            callback=callback,
            name=name or getattr(callback, "__qualname__", repr(callback)),
            priority=priority,
            seq=self._seq,
        )
        subs = self._subscribers.setdefault(hook, [])
        subs.append(sub)
        subs.sort(key=lambda s: (s.priority, s.seq))
        self._audit("subscribed", hook, sub.name, kind=kind.value, priority=priority)
        return sub

    def unsubscribe(self, hook: str, callback: Callable[..., Any]) -> bool:
        """Remove every subscription of callback on hook."""
        subs = self._subscribers.get(hook, [])
        kept = [s for s in subs if s.callback is not callback]
        if len(kept) == len(subs):
            return False
        self._subscribers[hook] = kept
        self._audit("unsubscribed", hook, getattr(callback, "__qualname__", repr(callback)))
        return True

    def disable(self, hook: str, name: str) -> bool:
        """Take a named subscriber out of dispatch without removing it."""
        for sub in self._subscribers.get(hook, []):
            if sub.name == name:
                sub.status = SubscriberStatus.DISABLED
                self._audit("disabled", hook, name)
                return True
        return False

    def enable(self, hook: str, name: str) -> bool:
        """Re-enable a disabled or auto-disabled subscriber."""
        for sub in self._subscribers.get(hook, []):
            if sub.name == name:
                sub.status = SubscriberStatus.ENABLED
                sub.error_count = 0
                self._audit("enabled", hook, name)
                return True
        return False

    def subscribers(self, hook: str) -> list[Subscriber]:
        return list(self._subscribers.get(hook, []))

    def has_subscribers(self, hook: str) -> bool:
        return any(
            s.status == SubscriberStatus.ENABLED for s in self._subscribers.get(hook, [])
        )

    # ── Dispatch ─────────────────────────────────────────────────────────

    def _record_error(self, sub: Subscriber, exc: Exception) -> None:
        sub.error_count += 1
        sub.last_error = str(exc)
        logger.warning(
            "Hook subscriber %s failed on %s: %s", sub.name, sub.hook, exc, exc_info=True
        )
        self._audit(
            "hook_error", sub.hook, sub.name, error=str(exc),
            error_count=sub.error_count,
        )
        if sub.error_count >= _MAX_ERRORS:
            sub.status = SubscriberStatus.ERROR
            self._audit("auto_disabled", sub.hook, sub.name, reason="too_many_errors")

    def apply_filters(self, hook: str, value: Any, *context: Any) -> Any:
        """Pass value through every enabled filter on hook, in order.

        A failing filter leaves the value as it was before that filter ran.
        """
        for sub in list(self._subscribers.get(hook, [])):
            if sub.status != SubscriberStatus.ENABLED:
                continue
            try:
                value = sub.callback(value, *context)
                self._audit("filter_applied", hook, sub.name)
            except Exception as e:
                self._record_error(sub, e)
        return value

    def do_action(self, hook: str, *args: Any) -> int:
        """Notify every enabled action subscriber on hook.

        Returns the number of subscribers that completed without error.
        """
        completed = 0
        for sub in list(self._subscribers.get(hook, [])):
            if sub.status != SubscriberStatus.ENABLED:
                continue
            try:
                sub.callback(*copy.deepcopy(args))
                completed += 1
                self._audit("action_dispatched", hook, sub.name)
            except Exception as e:
                self._record_error(sub, e)
        return completed

    # ── Status ───────────────────────────────────────────────────────────

    def status(self) -> dict[str, Any]:
        """Get registry status summary."""
        return {
            hook: [
                {
                    "name": s.name,
                    "kind": s.kind.value,
                    "priority": s.priority,
                    "status": s.status.value,
                    "error_count": s.error_count,
                }
                for s in subs
            ]
            for hook, subs in self._subscribers.items()
        }
