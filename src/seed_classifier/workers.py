import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator

from joblib import Parallel, delayed

from .exceptions import SearchCancelledError


class CancellationToken:
    """Cooperative cancellation flag, checked between units of work."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise SearchCancelledError("Search cancelled")


@dataclass(frozen=True)
class WorkerPool:
    """Worker-pool settings handed to the tuning drivers instead of a global cluster."""
    n_jobs: int = 4
    backend: str = "loky"
    verbose: int = 0

    def imap(
        self,
        func: Callable[..., Any],
        tasks: Iterable[tuple],
        token: CancellationToken | None = None,
    ) -> Iterator[Any]:
        """
        Yield ``func(*task)`` for every task, in submission order.

        When ``token`` is cancelled, pending tasks are abandoned and
        SearchCancelledError is raised; tasks already running finish on their own.
        """
        parallel = Parallel(
            n_jobs=self.n_jobs,
            backend=self.backend,
            verbose=self.verbose,
            return_as="generator",
        )
        results = parallel(delayed(func)(*task) for task in tasks)
        try:
            for result in results:
                if token is not None:
                    token.raise_if_cancelled()
                yield result
        finally:
            results.close()

    def map(self, func: Callable[..., Any], tasks: Iterable[tuple], token: CancellationToken | None = None) -> list[Any]:
        if token is not None:
            token.raise_if_cancelled()
        return list(self.imap(func, tasks, token))
