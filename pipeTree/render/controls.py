"""Matplotlib widget panel that drives a :class:`ViewController`."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict

from matplotlib.widgets import Button, CheckButtons, RadioButtons

from ..config.layout import get_layout_styles
from ..core.graph_builder import ViewMode
from ..core.labels import LabelField

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from ..workflows.controller import ViewController

logger = logging.getLogger(__name__)

AUTO_REFRESH_LABEL = "Auto refresh"


@dataclass
class ControlPanel:
    """Keeps references to the widgets so matplotlib does not garbage-collect them."""

    controller: "ViewController"
    widgets: Dict[str, Any] = field(default_factory=dict)

    def on_view_mode(self, title: str) -> None:
        mode = next(m for m in ViewMode if m.title == title)
        self.controller.set_view_mode(mode)

    def on_layout_style(self, name: str) -> None:
        self.controller.set_layout_style(name)

    def on_label(self, title: str) -> None:
        label = next(f for f in LabelField if f.title == title)
        self.controller.set_label_field(label)

    def on_auto_refresh(self, _label: str) -> None:
        self.controller.set_auto_refresh(not self.controller.auto_refresh)

    def on_refresh(self, _event: Any) -> None:
        self.controller.refresh()

    def on_dismiss(self, _event: Any) -> None:
        self.controller.dismiss_error()


def build_control_panel(figure: Any, controller: "ViewController") -> ControlPanel:
    """Add the view-mode, layout, label and refresh controls along the right edge of ``figure``."""

    panel = ControlPanel(controller=controller)
    state = controller.state

    modes = [mode.title for mode in ViewMode]
    mode_ax = figure.add_axes((0.82, 0.70, 0.17, 0.14))
    mode_ax.set_title("View Mode", fontsize=8)
    panel.widgets["view_mode"] = RadioButtons(mode_ax, modes, active=modes.index(state.view_mode.title))
    panel.widgets["view_mode"].on_clicked(panel.on_view_mode)

    styles = list(get_layout_styles())
    style_ax = figure.add_axes((0.82, 0.50, 0.17, 0.17))
    style_ax.set_title("Layout Style", fontsize=8)
    active_style = styles.index(state.layout_style) if state.layout_style in styles else 0
    panel.widgets["layout_style"] = RadioButtons(style_ax, styles, active=active_style)
    panel.widgets["layout_style"].on_clicked(panel.on_layout_style)

    labels = [label.title for label in LabelField]
    label_ax = figure.add_axes((0.82, 0.25, 0.17, 0.22))
    label_ax.set_title("Label Property", fontsize=8)
    panel.widgets["label"] = RadioButtons(label_ax, labels, active=labels.index(state.label_field.title))
    panel.widgets["label"].on_clicked(panel.on_label)

    auto_ax = figure.add_axes((0.82, 0.17, 0.17, 0.06))
    panel.widgets["auto_refresh"] = CheckButtons(auto_ax, [AUTO_REFRESH_LABEL], [controller.auto_refresh])
    panel.widgets["auto_refresh"].on_clicked(panel.on_auto_refresh)

    refresh_ax = figure.add_axes((0.82, 0.10, 0.08, 0.05))
    panel.widgets["refresh"] = Button(refresh_ax, "Refresh")
    panel.widgets["refresh"].on_clicked(panel.on_refresh)

    dismiss_ax = figure.add_axes((0.91, 0.10, 0.08, 0.05))
    panel.widgets["dismiss"] = Button(dismiss_ax, "Dismiss")
    panel.widgets["dismiss"].on_clicked(panel.on_dismiss)

    logger.debug("Control panel ready with %s widgets", len(panel.widgets))
    return panel
