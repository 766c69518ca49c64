"""
Observer / Lazy-Evaluation Plumbing

═══════════════════════════════════════════════════════════════════════════════
PUSH-BASED INVALIDATION
═══════════════════════════════════════════════════════════════════════════════

Market objects (the price process) are shared by many consumers. When one
of them changes, every dependent result must be discarded, but nothing
should be recomputed until somebody actually asks for it.

   process.update_params(vol=0.25)
        │  notify_observers()
        ▼
   Handle ──► solver.update()  →  _calculated = False
                                   (no work done yet)
   solver.value_at(100)        →  calculate() → perform_calculations()

The stale flag lives inside each LazyObject; there is no global state.
Observables hold their observers through weak references: a solver that
nobody uses any more is collected and drops out of the notification list.

═══════════════════════════════════════════════════════════════════════════════
"""

import weakref
from typing import Any, List, Optional


class Observable:
    """Something that can notify registered observers of a change."""

    def __init__(self):
        self._observers: List[weakref.ref] = []

    def _live_observers(self) -> List['Observer']:
        live = [ref() for ref in self._observers]
        if any(o is None for o in live):
            self._observers = [ref for ref in self._observers if ref() is not None]
        return [o for o in live if o is not None]

    def register_observer(self, observer: 'Observer') -> None:
        if not any(o is observer for o in self._live_observers()):
            self._observers.append(weakref.ref(observer))

    def unregister_observer(self, observer: 'Observer') -> None:
        self._observers = [
            ref for ref in self._observers if ref() is not None and ref() is not observer
        ]

    def notify_observers(self) -> None:
        # Strong copy: an observer may unregister itself while being updated
        for observer in self._live_observers():
            observer.update()

    @property
    def observer_count(self) -> int:
        return len(self._live_observers())


class Observer:
    """Receives update() calls from every observable it registered with."""

    def __init__(self):
        self._observables: List[Observable] = []

    def register_with(self, observable: Optional[Observable]) -> None:
        if observable is None:
            return
        observable.register_observer(self)
        if not any(o is observable for o in self._observables):
            self._observables.append(observable)

    def unregister_with(self, observable: Observable) -> None:
        observable.unregister_observer(self)
        self._observables = [o for o in self._observables if o is not observable]

    def update(self) -> None:
        raise NotImplementedError


class Handle(Observable, Observer):
    """
    Relinkable reference to a market object.

    Consumers register with the handle rather than with the object itself,
    so they are notified both when the linked object changes and when the
    handle is pointed at a different object.
    """

    def __init__(self, link: Any = None):
        Observable.__init__(self)
        Observer.__init__(self)
        self._link = None
        if link is not None:
            self.link_to(link)

    def link_to(self, link: Any) -> None:
        if link is self._link:
            return
        if isinstance(self._link, Observable):
            self.unregister_with(self._link)
        self._link = link
        if isinstance(link, Observable):
            self.register_with(link)
        self.notify_observers()

    def current_link(self) -> Any:
        if self._link is None:
            raise ValueError("empty handle cannot be dereferenced")
        return self._link

    @property
    def empty(self) -> bool:
        return self._link is None

    def update(self) -> None:
        self.notify_observers()


class LazyObject(Observable, Observer):
    """
    Base class for objects whose results are computed on demand and cached.

    Subclasses implement perform_calculations(). It must build its results
    in fresh storage and assign them at the end, so that an exception
    leaves the previously cached results untouched. The object then stays
    stale and the next query retries.
    """

    def __init__(self):
        Observable.__init__(self)
        Observer.__init__(self)
        self._calculated = False

    def calculate(self) -> None:
        if not self._calculated:
            self.perform_calculations()
            self._calculated = True

    def recalculate(self) -> None:
        self._calculated = False
        self.calculate()

    def perform_calculations(self) -> None:
        raise NotImplementedError

    def update(self) -> None:
        # Forward only on the first notification after a calculation
        if self._calculated:
            self._calculated = False
            self.notify_observers()

    @property
    def is_calculated(self) -> bool:
        return self._calculated
