"""
Minimal publish/subscribe signals.

A Signal keeps an ordered list of handlers. ``connect`` returns a
Subscription token; cancelling the token is the only way to detach a
handler, so the owner of a token always knows what it is still listening to.
All emission happens on the calling thread.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from attrs import define, field


@define(eq=False)
class Subscription:
    """Token returned by ``Signal.connect``."""

    signal: Signal
    handler: Callable[..., Any]
    active: bool = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self.signal._discard(self)


@define(eq=False)
class Signal:
    """Named channel that calls its connected handlers on ``emit``."""

    name: str
    _subscriptions: list[Subscription] = field(factory=list, init=False, repr=False)

    def connect(self, handler: Callable[..., Any]) -> Subscription:
        subscription = Subscription(self, handler)
        self._subscriptions.append(subscription)
        return subscription

    def emit(self, *args: Any) -> None:
        # Handlers may cancel subscriptions while we iterate
        for subscription in tuple(self._subscriptions):
            if subscription.active:
                subscription.handler(*args)

    def clear(self) -> None:
        for subscription in tuple(self._subscriptions):
            subscription.cancel()

    @property
    def receivers(self) -> int:
        return len(self._subscriptions)

    def _discard(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)


def cancel_all(subscriptions: Iterable[Subscription]) -> None:
    """Cancel every token in ``subscriptions``."""
    for subscription in subscriptions:
        subscription.cancel()
