"""View controller tying the topology source, graph builder, layout and renderer together."""
from __future__ import annotations

import datetime
import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass, replace
from typing import Callable, Optional

from ..config.layout import DEFAULT_STYLE_NAME, get_layout_style
from ..core.graph_builder import BuildOptions, GraphModel, ViewMode, build_graph
from ..core.labels import LabelField
from ..core.model import Topology
from ..data.source import FetchError, TopologySource, load_demo_topology
from ..render.layout import Layout, compute_layout
from ..render.renderer import Renderer
from .scheduler import Scheduler, TaskHandle

logger = logging.getLogger(__name__)

REFRESH_TIME_FORMAT = "%Y/%m/%d@%H:%M:%S"


@dataclass(frozen=True)
class ViewState:
    """Every user-selectable control; each change produces a new state."""

    view_mode: ViewMode = ViewMode.FOLLOWING
    layout_style: str = DEFAULT_STYLE_NAME
    label_field: LabelField = LabelField.PIPE_HOST
    cluster_groups: bool = True

    def build_options(self) -> BuildOptions:
        return BuildOptions(
            view_mode=self.view_mode,
            label_field=self.label_field,
            cluster_groups=self.cluster_groups,
        )


@dataclass(frozen=True)
class ErrorState:
    message: str
    occurred_at: datetime.datetime


@dataclass(frozen=True)
class FetchTicket:
    sequence: int
    issued_at: float


class ViewController:
    """Own the UI state and rebuild the whole graph on every change.

    Fetches are numbered as they are issued; only the completion of the most
    recently issued fetch is applied, older completions are discarded.
    """

    def __init__(
        self,
        source: TopologySource,
        renderer: Renderer,
        scheduler: Scheduler,
        *,
        state: Optional[ViewState] = None,
        executor: Optional[Executor] = None,
        refresh_interval: float = 60.0,
        fallback: Callable[[], Topology] = load_demo_topology,
    ):
        self.source = source
        self.renderer = renderer
        self.scheduler = scheduler
        self.executor = executor
        self.refresh_interval = refresh_interval
        self.fallback = fallback
        self._state = state or ViewState()
        get_layout_style(self._state.layout_style)

        self.topology: Optional[Topology] = None
        self.model: Optional[GraphModel] = None
        self.layout: Optional[Layout] = None
        self.error: Optional[ErrorState] = None
        self.last_refresh: Optional[datetime.datetime] = None
        self.using_fallback = False
        self.draw_count = 0

        self._issued = 0
        self._auto_refresh: Optional[TaskHandle] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def state(self) -> ViewState:
        return self._state

    def update_state(self, **changes) -> ViewState:
        if "view_mode" in changes:
            changes["view_mode"] = ViewMode.parse(changes["view_mode"])
        if "label_field" in changes:
            changes["label_field"] = LabelField.parse(changes["label_field"])
        if "layout_style" in changes:
            get_layout_style(changes["layout_style"])
        new_state = replace(self._state, **changes)
        if new_state == self._state:
            return self._state
        logger.debug("View state changed: %s", new_state)
        previous, self._state = self._state, new_state
        try:
            self.redraw()
        except Exception:
            self._state = previous
            raise
        return new_state

    def set_view_mode(self, view_mode: "str | ViewMode") -> ViewState:
        return self.update_state(view_mode=view_mode)

    def set_layout_style(self, name: str) -> ViewState:
        return self.update_state(layout_style=name)

    def set_label_field(self, label_field: "str | LabelField") -> ViewState:
        return self.update_state(label_field=label_field)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def redraw(self) -> None:
        """Rebuild the graph model, lay it out and draw it from scratch."""

        if self.topology is None:
            self.renderer.clear()
            return
        self._draw(self.topology)

    def _draw(self, topology: Topology) -> None:
        # nothing is cleared until the new drawing is ready
        model = build_graph(topology, self._state.build_options())
        layout = compute_layout(model, get_layout_style(self._state.layout_style))
        self.renderer.clear()
        self.renderer.draw(model, layout)
        self.model = model
        self.layout = layout
        self.draw_count += 1

    def show_topology(self, topology: Topology, *, fallback: bool = False) -> None:
        self._draw(topology)
        self.topology = topology
        self.using_fallback = fallback
        if not fallback:
            self.last_refresh = datetime.datetime.now()
            self.renderer.show_status(f"Last refresh: {self.last_refresh.strftime(REFRESH_TIME_FORMAT)}")

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    @property
    def latest_sequence(self) -> int:
        return self._issued

    def begin_fetch(self) -> FetchTicket:
        self._issued += 1
        return FetchTicket(sequence=self._issued, issued_at=self.scheduler.now())

    def complete_fetch(
        self,
        ticket: FetchTicket,
        topology: Optional[Topology] = None,
        error: Optional[BaseException] = None,
    ) -> bool:
        """Apply a fetch result; returns ``False`` when a newer fetch has been issued since."""

        if ticket.sequence != self._issued:
            logger.info(
                "Discarding stale topology fetch #%s (latest issued is #%s)",
                ticket.sequence,
                self._issued,
            )
            return False
        if error is not None or topology is None:
            self._handle_failure(error or FetchError("Topology source returned no data"))
            return True
        self.dismiss_error()
        self.show_topology(topology)
        return True

    def refresh(self) -> FetchTicket:
        """Issue a fetch; the result is applied on the scheduler's thread."""

        ticket = self.begin_fetch()
        logger.debug("Fetching topology #%s from %s", ticket.sequence, self.source.description)
        if self.executor is None:
            self._complete_from_call(ticket, self.source.fetch)
            return ticket

        future = self.executor.submit(self.source.fetch)
        future.add_done_callback(
            lambda done: self.scheduler.call_soon_threadsafe(lambda: self._complete_from_future(ticket, done))
        )
        return ticket

    def _complete_from_call(self, ticket: FetchTicket, call: Callable[[], Topology]) -> None:
        try:
            topology = call()
        except FetchError as exc:
            self.complete_fetch(ticket, error=exc)
        except Exception as exc:
            logger.exception("Unexpected error while fetching topology #%s", ticket.sequence)
            self.complete_fetch(ticket, error=exc)
        else:
            try:
                self.complete_fetch(ticket, topology=topology)
            except Exception as exc:
                logger.exception("Could not draw topology #%s", ticket.sequence)
                self._handle_failure(exc)

    def _complete_from_future(self, ticket: FetchTicket, future: "Future[Topology]") -> None:
        self._complete_from_call(ticket, future.result)

    def _handle_failure(self, error: BaseException) -> None:
        logger.error("Topology update failed: %s", error)
        self.error = ErrorState(message=str(error), occurred_at=datetime.datetime.now())
        self.renderer.show_error(self.error.message)
        if self.topology is not None:
            return
        try:
            self.show_topology(self.fallback(), fallback=True)
        except FetchError as exc:
            logger.error("Demo topology unavailable: %s", exc)
        except Exception:
            logger.exception("Could not draw the demo topology")

    def dismiss_error(self) -> None:
        if self.error is None:
            return
        self.error = None
        self.renderer.clear_error()

    # ------------------------------------------------------------------
    # Auto refresh
    # ------------------------------------------------------------------
    @property
    def auto_refresh(self) -> bool:
        return self._auto_refresh is not None and not self._auto_refresh.cancelled

    def set_auto_refresh(self, enabled: bool) -> None:
        if enabled and not self.auto_refresh:
            self._auto_refresh = self.scheduler.call_every(self.refresh_interval, self.refresh, name="auto-refresh")
            logger.info("Auto refresh enabled every %.0f s", self.refresh_interval)
        elif not enabled and self._auto_refresh is not None:
            self._auto_refresh.cancel()
            self._auto_refresh = None
            logger.info("Auto refresh disabled")

    def close(self) -> None:
        self.set_auto_refresh(False)
        self.renderer.clear()
