"""Explicit dependency graph with memoised nodes.

A ``Graph`` holds named nodes, each a function of its declared
dependencies' results.  ``run()`` evaluates the requested targets in
topological order (``graphlib``), submitting every node whose
dependencies are satisfied to a thread pool so independent branches run
concurrently.  Each node is computed at most once per graph; results are
memoised across ``run()`` calls.

Failure semantics:
    The first failing node cancels the shared ``CancelToken`` (long
    reductions in flight stop at their next row block), pending nodes
    are not started, and a single ``PipelineError`` is raised, attributed
    with the node name as stage plus the graph's feature and date range.
    Exceptions that are not ``PipelineError`` are wrapped in
    ``StageError``.

    The token is never reset, so a graph is single-use once cancelled:
    a later ``run()`` that still has nodes to evaluate raises
    ``ReductionCancelled`` with the original reason.  Build a new graph
    (and token) to retry.

Wiring errors (unknown dependencies, cycles, duplicate names) raise
``ContractError`` before anything runs.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from typing import TYPE_CHECKING, Any

from suhi_pipeline.activities.zonal_stats import CancelToken
from suhi_pipeline.core.exceptions import ContractError, PipelineError, ReductionCancelled

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger("suhi_pipeline.orchestrators.dag")


class StageError(PipelineError):
    """A node raised an exception outside the pipeline taxonomy."""

    default_code = "STAGE_FAILED"


@dataclass(frozen=True, slots=True)
class Node:
    """A named computation and the nodes it depends on."""

    name: str
    fn: Callable[..., Any]
    deps: tuple[str, ...] = ()


class Graph:
    """Directed acyclic graph of memoised pipeline stages."""

    def __init__(
        self,
        *,
        feature: str = "",
        date_range: str = "",
        cancel: CancelToken | None = None,
    ) -> None:
        self._nodes: dict[str, Node] = {}
        self._results: dict[str, Any] = {}
        self.feature = feature
        self.date_range = date_range
        self.cancel = cancel or CancelToken()

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    @property
    def names(self) -> list[str]:
        return list(self._nodes)

    def add(self, name: str, fn: Callable[..., Any], *deps: str) -> None:
        """Register *fn* as node *name*; it receives the results of *deps* positionally.

        Raises:
            ContractError: If *name* is already registered.
        """
        if name in self._nodes:
            msg = f"Graph node '{name}' is already registered"
            raise ContractError(msg, stage="graph")
        self._nodes[name] = Node(name=name, fn=fn, deps=tuple(deps))

    def result(self, name: str) -> Any:
        """Memoised result of a node that has already run."""
        try:
            return self._results[name]
        except KeyError:
            msg = f"Graph node '{name}' has not been evaluated"
            raise ContractError(msg, stage="graph") from None

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def order(self, targets: Iterable[str] | None = None) -> list[str]:
        """Topological order of *targets* and their ancestors.

        Raises:
            ContractError: On unknown nodes or dependency cycles.
        """
        sorter = _prepared(self._subgraph(targets))
        ordered: list[str] = []
        while sorter.is_active():
            ready = sorted(sorter.get_ready())
            ordered.extend(ready)
            sorter.done(*ready)
        return ordered

    def run(self, targets: Iterable[str] | None = None, *, max_workers: int = 4) -> dict[str, Any]:
        """Evaluate *targets* (default: every node) and return all results.

        Raises:
            ContractError: On wiring errors.
            ReductionCancelled: If the graph was cancelled and nodes remain to evaluate.
            PipelineError: The attributed error of the first failing node.
        """
        subgraph = self._subgraph(targets)
        sorter = _prepared(subgraph)
        pending = [name for name in subgraph if name not in self._results]
        if pending and self.cancel.cancelled:
            msg = f"Graph was cancelled ({self.cancel.reason or 'no reason given'}); build a new graph to re-run"
            raise ReductionCancelled(
                msg, stage="graph", retryable=False, feature=self.feature, date_range=self.date_range
            )

        started = time.monotonic()
        logger.info(
            "Graph run started | feature=%s | nodes=%d | memoised=%d | workers=%d",
            self.feature,
            len(subgraph),
            sum(1 for n in subgraph if n in self._results),
            max_workers,
        )

        failure: PipelineError | None = None
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="suhi-node") as pool:
            running: dict[Future[Any], str] = {}
            while sorter.is_active() and failure is None:
                for name in sorter.get_ready():
                    if name in self._results:
                        sorter.done(name)
                        continue
                    node = self._nodes[name]
                    args = [self._results[dep] for dep in node.deps]
                    running[pool.submit(self._execute, node, args)] = name

                if not running:
                    continue
                finished, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in finished:
                    name = running.pop(future)
                    exc = future.exception()
                    if exc is None:
                        self._results[name] = future.result()
                        sorter.done(name)
                    elif failure is None:
                        failure = self._attribute(name, exc)
                        self.cancel.cancel(f"stage '{name}' failed: {failure.message}")

            for future in running:
                future.cancel()

        if failure is not None:
            logger.error(
                "Graph run failed | feature=%s | stage=%s | code=%s | error=%s",
                self.feature,
                failure.stage,
                failure.code,
                failure.message,
            )
            raise failure

        logger.info(
            "Graph run completed | feature=%s | nodes=%d | duration=%.2fs",
            self.feature,
            len(subgraph),
            time.monotonic() - started,
        )
        return dict(self._results)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _subgraph(self, targets: Iterable[str] | None) -> dict[str, tuple[str, ...]]:
        for node in self._nodes.values():
            unknown = [dep for dep in node.deps if dep not in self._nodes]
            if unknown:
                msg = f"Graph node '{node.name}' depends on unknown node(s): {', '.join(unknown)}"
                raise ContractError(msg, stage="graph")

        wanted = list(self._nodes) if targets is None else list(targets)
        subgraph: dict[str, tuple[str, ...]] = {}
        stack = list(wanted)
        while stack:
            name = stack.pop()
            if name in subgraph:
                continue
            if name not in self._nodes:
                msg = f"Unknown graph target: '{name}'"
                raise ContractError(msg, stage="graph")
            subgraph[name] = self._nodes[name].deps
            stack.extend(self._nodes[name].deps)
        return subgraph

    def _execute(self, node: Node, args: list[Any]) -> Any:
        self.cancel.raise_if_cancelled(stage=node.name)
        started = time.monotonic()
        logger.debug("Node started | node=%s | feature=%s", node.name, self.feature)
        result = node.fn(*args)
        logger.debug(
            "Node completed | node=%s | feature=%s | duration=%.2fs",
            node.name,
            self.feature,
            time.monotonic() - started,
        )
        return result

    def _attribute(self, name: str, exc: BaseException) -> PipelineError:
        if isinstance(exc, PipelineError):
            error = exc
        else:
            error = StageError(f"{type(exc).__name__}: {exc}")
            error.__cause__ = exc
        error.attribute(stage=name, feature=self.feature, date_range=self.date_range)
        if isinstance(error, ReductionCancelled):
            logger.debug("Node cancelled | node=%s | reason=%s", name, self.cancel.reason)
        return error


def _prepared(subgraph: dict[str, tuple[str, ...]]) -> TopologicalSorter[str]:
    sorter: TopologicalSorter[str] = TopologicalSorter(subgraph)
    try:
        sorter.prepare()
    except CycleError as exc:
        cycle = " -> ".join(exc.args[1]) if len(exc.args) > 1 else "?"
        msg = f"Graph has a dependency cycle: {cycle}"
        raise ContractError(msg, stage="graph") from exc
    return sorter
