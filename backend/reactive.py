"""
Reactive Cells

Observable values and computed values that cache their result and
recompute when any cell they read changes.

Invalidation is pushed eagerly through the dependency graph, values are
pulled lazily. A computed cell therefore evaluates at most once per change
and only after the cells it reads are up to date, so listeners never see a
half-updated graph.
"""

from typing import Any, Callable, Dict, List


# One entry per computed cell currently evaluating; collects the cells it reads.
_tracking_frames: List[Dict["_Cell", None]] = []


class Subscription:
    """Handle returned by subscribe(); dispose() stops further callbacks."""

    def __init__(self, cell: "_Cell", callback: Callable[[Any], None]):
        self._cell = cell
        self.callback = callback

    def dispose(self) -> None:
        if self in self._cell._listeners:
            self._cell._listeners.remove(self)

    @property
    def active(self) -> bool:
        return self in self._cell._listeners


class _Cell:
    """Shared plumbing for observable and computed cells."""

    def __init__(self):
        # Insertion-ordered so propagation order is deterministic
        self._dependents: Dict["Computed", None] = {}
        self._listeners: List[Subscription] = []

    def _track(self) -> None:
        if _tracking_frames:
            _tracking_frames[-1][self] = None

    def subscribe(self, callback: Callable[[Any], None]) -> Subscription:
        """Call `callback(new_value)` every time this cell notifies."""
        subscription = Subscription(self, callback)
        self._listeners.append(subscription)
        return subscription

    def _notify_listeners(self, value: Any) -> None:
        for subscription in list(self._listeners):
            if subscription.active:
                subscription.callback(value)

    def _propagate(self) -> None:
        """Mark every downstream computed stale, then refresh the ones being watched."""
        stale: Dict["Computed", None] = {}
        for dependent in list(self._dependents):
            dependent._invalidate(stale)
        for computed in stale:
            if computed._listeners:
                computed._refresh()


class Observable(_Cell):
    """
    A mutable value cell.

    Setting an equal value is not a change and notifies nobody. Use touch()
    to force dependents to re-run even though the stored value is unchanged.
    """

    def __init__(self, value: Any = None):
        super().__init__()
        self._value = value

    @property
    def value(self) -> Any:
        self._track()
        return self._value

    @value.setter
    def value(self, new_value: Any) -> None:
        self.set(new_value)

    def peek(self) -> Any:
        """Read without registering a dependency."""
        return self._value

    def set(self, new_value: Any) -> None:
        if new_value is self._value or new_value == self._value:
            return
        self._value = new_value
        self._notify()

    def touch(self) -> None:
        """Notify listeners and dependents as if the value had changed."""
        self._notify()

    def _notify(self) -> None:
        self._propagate()
        self._notify_listeners(self._value)

    def __repr__(self) -> str:
        return f"Observable({self._value!r})"


class Computed(_Cell):
    """
    A derived value cell.

    The evaluate function is called with no arguments; every cell it reads
    becomes a dependency for that evaluation. Dependencies are re-collected
    on each evaluation, so conditional reads are handled correctly.
    """

    def __init__(self, evaluate: Callable[[], Any]):
        super().__init__()
        self._evaluate = evaluate
        self._sources: Dict[_Cell, None] = {}
        self._value: Any = None
        self._dirty = True
        self._evaluating = False
        self._pending_notification = False
        self._recompute()

    @property
    def value(self) -> Any:
        self._track()
        if self._dirty:
            self._recompute()
        return self._value

    def peek(self) -> Any:
        if self._dirty:
            self._recompute()
        return self._value

    @property
    def is_stale(self) -> bool:
        return self._dirty

    def _recompute(self) -> None:
        if self._evaluating:
            raise RuntimeError("Circular dependency detected while evaluating computed cell")

        self._evaluating = True
        _tracking_frames.append({})
        try:
            new_value = self._evaluate()
        finally:
            sources = _tracking_frames.pop()
            self._evaluating = False

        for old_source in self._sources:
            if old_source not in sources:
                old_source._dependents.pop(self, None)
        for source in sources:
            source._dependents[self] = None
        self._sources = sources
        self._dirty = False

        changed = not (new_value is self._value or new_value == self._value)
        if changed and self._listeners:
            self._pending_notification = True
        self._value = new_value

    def _invalidate(self, stale: Dict["Computed", None]) -> None:
        if self in stale:
            return
        self._dirty = True
        stale[self] = None
        for dependent in list(self._dependents):
            dependent._invalidate(stale)

    def _refresh(self) -> None:
        # May already have been pulled clean by a downstream refresh
        if self._dirty:
            self._recompute()
        if self._pending_notification:
            self._pending_notification = False
            self._notify_listeners(self._value)

    def dispose(self) -> None:
        """Detach from every source so this cell no longer recomputes."""
        for source in self._sources:
            source._dependents.pop(self, None)
        self._sources = {}
        self._listeners.clear()
        self._dirty = True

    def __repr__(self) -> str:
        state = "stale" if self._dirty else repr(self._value)
        return f"Computed({state})"

