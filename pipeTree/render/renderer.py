"""Renderers that draw a laid-out follower graph onto an interactive canvas."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from matplotlib.figure import Figure
from matplotlib.patches import FancyBboxPatch, Rectangle

from ..core.graph_builder import EdgeStyle, GraphModel
from .layout import Bounds, Layout, NodeBox
from .tooltips import tooltip_text

logger = logging.getLogger(__name__)

MIN_ZOOM = 0.5
MAX_ZOOM = 2.0
ZOOM_STEP = 1.2


@dataclass(frozen=True)
class Margins:
    top: float = 40.0
    right: float = 40.0
    bottom: float = 80.0
    left: float = 40.0


DEFAULT_MARGINS = Margins()

NODE_COLORS: Dict[str, str] = {
    "node-root": "#cfe2ff",
    "pipe-up-to-date": "#d1f2d9",
    "pipe-out-of-sync": "#ffe5b4",
    "pipe-down": "#f8c9c9",
    "node-follower": "#ffffff",
}

EDGE_COLORS: Dict[EdgeStyle, str] = {
    EdgeStyle.FOLLOWING: "#333333",
    EdgeStyle.MATCH: "#333333",
    EdgeStyle.MISMATCH: "#999999",
    EdgeStyle.REQUESTED: "lightcoral",
}


def node_color(css_class: str) -> str:
    """Pick a fill color from the most specific class present (pipe state first)."""

    classes = css_class.split()
    for cls in reversed(classes):
        if cls in NODE_COLORS:
            return NODE_COLORS[cls]
    return NODE_COLORS["node-follower"]


@dataclass(frozen=True)
class ViewTransform:
    """Screen = data * scale + translate."""

    scale: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    def visible_region(self, viewport: Tuple[float, float]) -> Tuple[float, float, float, float]:
        width, height = viewport
        return (
            -self.tx / self.scale,
            -self.ty / self.scale,
            (width - self.tx) / self.scale,
            (height - self.ty) / self.scale,
        )

    def zoomed(self, factor: float, anchor: Tuple[float, float]) -> "ViewTransform":
        scale = clamp_zoom(self.scale * factor)
        applied = scale / self.scale
        ax, ay = anchor
        return ViewTransform(scale, ax - (ax - self.tx) * applied, ay - (ay - self.ty) * applied)

    def panned(self, dx: float, dy: float) -> "ViewTransform":
        return ViewTransform(self.scale, self.tx + dx, self.ty + dy)


def clamp_zoom(scale: float, minimum: float = MIN_ZOOM, maximum: float = MAX_ZOOM) -> float:
    return max(minimum, min(maximum, scale))


def fit_scale(
    bounds: Bounds,
    viewport: Tuple[float, float],
    margins: Margins = DEFAULT_MARGINS,
    *,
    minimum: float = MIN_ZOOM,
    maximum: float = MAX_ZOOM,
) -> float:
    """Largest scale (never above 1) at which the graph plus margins fits the viewport."""

    total_width = bounds.width + margins.left + margins.right
    total_height = bounds.height + margins.top + margins.bottom
    width, height = viewport
    scale = min(width / total_width, height / total_height, 1.0)
    return clamp_zoom(scale, minimum, maximum)


def initial_transform(bounds: Bounds, viewport: Tuple[float, float], margins: Margins = DEFAULT_MARGINS) -> ViewTransform:
    scale = fit_scale(bounds, viewport, margins)
    return ViewTransform(scale, (margins.left - bounds.x0) * scale, (margins.top - bounds.y0) * scale)


class Renderer(ABC):
    """Drawing surface for a follower graph."""

    @abstractmethod
    def draw(self, model: GraphModel, layout: Layout) -> None:
        """Replace whatever is on screen with ``model`` laid out as ``layout``."""

    @abstractmethod
    def attach_tooltip(self, node_id: str, content: str) -> None:
        """Attach hover content to a drawn node."""

    @abstractmethod
    def clear(self) -> None:
        """Destroy tooltips, then remove every drawn element."""

    @property
    @abstractmethod
    def tooltip_count(self) -> int:
        ...

    def show_error(self, message: str) -> None:  # pragma: no cover - optional surface
        logger.error("%s", message)

    def clear_error(self) -> None:  # pragma: no cover - optional surface
        return None

    def show_status(self, message: str) -> None:  # pragma: no cover - optional surface
        return None


class Tooltip:
    """Hover annotation bound to one node box."""

    def __init__(self, node_id: str, box: NodeBox, annotation):
        self.node_id = node_id
        self.box = box
        self.annotation = annotation
        self.destroyed = False

    def contains(self, x: Optional[float], y: Optional[float]) -> bool:
        if x is None or y is None:
            return False
        return self.box.x0 <= x <= self.box.x1 and self.box.y0 <= y <= self.box.y1

    def set_visible(self, visible: bool) -> bool:
        if self.destroyed or self.annotation.get_visible() == visible:
            return False
        self.annotation.set_visible(visible)
        return True

    def destroy(self) -> None:
        if self.destroyed:
            return
        self.destroyed = True
        try:
            self.annotation.remove()
        except (ValueError, NotImplementedError):
            pass


class MatplotlibRenderer(Renderer):
    """Draw follower graphs on a matplotlib figure with hover tooltips and pan/zoom."""

    def __init__(
        self,
        figure: Optional[Figure] = None,
        *,
        viewport: Optional[Tuple[float, float]] = None,
        margins: Margins = DEFAULT_MARGINS,
        rect: Tuple[float, float, float, float] = (0.0, 0.0, 1.0, 0.92),
    ):
        self.figure = figure or Figure(figsize=(12, 8))
        self.ax = self.figure.add_axes(rect)
        self.ax.set_axis_off()
        self.margins = margins
        self._viewport = viewport
        self._artists: List[object] = []
        self._tooltips: Dict[str, Tooltip] = {}
        self._boxes: Dict[str, NodeBox] = {}
        self._connections: List[int] = []
        self._error_artist = None
        self._status_artist = None
        self._drag_origin: Optional[Tuple[float, float]] = None
        self.transform = ViewTransform()

    # ------------------------------------------------------------------
    # Viewport
    # ------------------------------------------------------------------
    @property
    def viewport(self) -> Tuple[float, float]:
        if self._viewport:
            return self._viewport
        width, height = self.figure.get_size_inches() * self.figure.dpi
        bbox = self.ax.get_position()
        return float(width * bbox.width), float(height * bbox.height)

    def apply_transform(self, transform: ViewTransform) -> None:
        self.transform = transform
        x0, y0, x1, y1 = transform.visible_region(self.viewport)
        self.ax.set_xlim(x0, x1)
        # screen-space y grows downward
        self.ax.set_ylim(y1, y0)

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------
    @property
    def tooltip_count(self) -> int:
        return len(self._tooltips)

    def clear(self) -> None:
        for tooltip in self._tooltips.values():
            tooltip.destroy()
        self._tooltips.clear()
        for cid in self._connections:
            self.figure.canvas.mpl_disconnect(cid)
        self._connections.clear()
        for artist in self._artists:
            try:
                artist.remove()
            except (ValueError, NotImplementedError):
                continue
        self._artists.clear()
        self._boxes.clear()

    def draw(self, model: GraphModel, layout: Layout) -> None:
        self.clear()
        ax = self.ax

        for cluster in layout.clusters.values():
            self._artists.append(
                ax.add_patch(
                    Rectangle(
                        (cluster.x0, cluster.y0),
                        cluster.width,
                        cluster.height,
                        facecolor="#f0f0f0",
                        edgecolor="#cccccc",
                        linewidth=1.0,
                        zorder=0,
                    )
                )
            )
            lx, ly = cluster.label_position
            self._artists.append(
                ax.text(lx, ly, cluster.label, ha="center", va="center", fontsize=8, fontweight="semibold", zorder=1)
            )

        for path in layout.edges:
            color = EDGE_COLORS.get(path.edge.style, "#333333")
            xs = [p[0] for p in path.points]
            ys = [p[1] for p in path.points]
            (line,) = ax.plot(xs[:-1], ys[:-1], color=color, linewidth=1.5, zorder=2)
            self._artists.append(line)
            self._artists.append(
                ax.annotate(
                    "",
                    xy=path.points[-1],
                    xytext=path.points[-2],
                    arrowprops={"arrowstyle": "-|>", "color": color, "linewidth": 1.5, "shrinkA": 0, "shrinkB": 0},
                    zorder=2,
                )
            )
            label_x, label_y = path.label_position
            self._artists.append(
                ax.text(
                    label_x,
                    label_y,
                    path.edge.label,
                    ha="center",
                    va="center",
                    fontsize=7,
                    fontweight="semibold",
                    color=color,
                    bbox={"boxstyle": "round,pad=0.15", "facecolor": "white", "edgecolor": "none", "alpha": 0.8},
                    zorder=3,
                )
            )

        for node_id, box in layout.nodes.items():
            graph_node = model.nodes.get(node_id)
            if graph_node is None:
                continue
            self._boxes[node_id] = box
            self._artists.append(
                ax.add_patch(
                    FancyBboxPatch(
                        (box.x0, box.y0),
                        box.width,
                        box.height,
                        boxstyle="round,pad=0,rounding_size=5",
                        facecolor=node_color(graph_node.css_class),
                        edgecolor="#555555",
                        linewidth=1.0,
                        zorder=4,
                    )
                )
            )
            self._artists.append(
                ax.text(box.x, box.y, graph_node.label, ha="center", va="center", fontsize=8, zorder=5)
            )

        self.apply_transform(initial_transform(layout.bounds, self.viewport, self.margins))

        for node_id, graph_node in model.nodes.items():
            if node_id in self._boxes:
                self.attach_tooltip(node_id, tooltip_text(graph_node))

        canvas = self.figure.canvas
        self._connections = [
            canvas.mpl_connect("motion_notify_event", self._on_motion),
            canvas.mpl_connect("scroll_event", self._on_scroll),
            canvas.mpl_connect("button_press_event", self._on_press),
            canvas.mpl_connect("button_release_event", self._on_release),
        ]
        canvas.draw_idle()

    def attach_tooltip(self, node_id: str, content: str) -> None:
        box = self._boxes.get(node_id)
        if box is None:
            logger.debug("Ignoring tooltip for undrawn node '%s'", node_id)
            return
        existing = self._tooltips.pop(node_id, None)
        if existing:
            existing.destroy()
        annotation = self.ax.annotate(
            content,
            xy=(box.x1, box.y),
            xytext=(12, 0),
            textcoords="offset points",
            ha="left",
            va="center",
            fontsize=7,
            family="monospace",
            bbox={"boxstyle": "round,pad=0.4", "facecolor": "white", "edgecolor": "#999999"},
            zorder=10,
            annotation_clip=False,
        )
        annotation.set_visible(False)
        self._tooltips[node_id] = Tooltip(node_id, box, annotation)

    def show_error(self, message: str) -> None:
        self.clear_error()
        self._error_artist = self.figure.text(
            0.01, 0.97, f"Error: {message}", color="red", fontsize=9, ha="left", va="center"
        )
        self.figure.canvas.draw_idle()

    def clear_error(self) -> None:
        if self._error_artist is not None:
            self._error_artist.remove()
            self._error_artist = None
            self.figure.canvas.draw_idle()

    def show_status(self, message: str) -> None:
        if self._status_artist is not None:
            self._status_artist.remove()
        self._status_artist = self.figure.text(0.99, 0.97, message, fontsize=8, ha="right", va="center", color="#555555")
        self.figure.canvas.draw_idle()

    def save(self, path) -> None:
        self.figure.savefig(path, bbox_inches="tight")

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------
    def hover(self, x: Optional[float], y: Optional[float]) -> Optional[str]:
        """Show the tooltip under ``(x, y)`` in layout coordinates and hide the rest."""

        hit: Optional[str] = None
        changed = False
        for node_id, tooltip in self._tooltips.items():
            inside = hit is None and tooltip.contains(x, y)
            if inside:
                hit = node_id
            changed = tooltip.set_visible(inside) or changed
        if changed:
            self.figure.canvas.draw_idle()
        return hit

    def _on_motion(self, event) -> None:
        if self._drag_origin is not None and event.x is not None:
            ox, oy = self._drag_origin
            # canvas pixels grow upward; screen space grows downward
            self.apply_transform(self.transform.panned(event.x - ox, oy - event.y))
            self._drag_origin = (event.x, event.y)
            self.figure.canvas.draw_idle()
            return
        if event.inaxes is not self.ax:
            self.hover(None, None)
            return
        self.hover(event.xdata, event.ydata)

    def _on_scroll(self, event) -> None:
        if event.inaxes is not self.ax or event.xdata is None:
            return
        factor = ZOOM_STEP if event.button == "up" else 1 / ZOOM_STEP
        anchor = (
            event.xdata * self.transform.scale + self.transform.tx,
            event.ydata * self.transform.scale + self.transform.ty,
        )
        self.apply_transform(self.transform.zoomed(factor, anchor))
        self.figure.canvas.draw_idle()

    def _on_press(self, event) -> None:
        if event.inaxes is self.ax and event.button == 1:
            self._drag_origin = (event.x, event.y)

    def _on_release(self, event) -> None:
        self._drag_origin = None
