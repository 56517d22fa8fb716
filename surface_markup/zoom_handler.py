"""Wheel zoom & right-drag pan for the markup editor canvas.

The handler does not own the editor. It keeps a weak reference to its owner
and every event handler becomes a no-op once the owner has been collected,
so a dangling handler can never keep an editor alive or touch a dead one.

The owner exposes:
    zoom      float, display pixels per canvas unit
    offset    (x, y) widget position of the canvas-space origin
    refresh() redraw after zoom/offset changed

Usage:

    handler = ZoomPanHandler(widget=self.canvas, owner=self)
"""
from typing import Optional, Tuple
import logging
import weakref

logger = logging.getLogger(__name__)


class ZoomPanHandler:
    def __init__(
        self,
        widget,
        owner,
        min_zoom: float = 0.1,
        max_zoom: float = 10.0,
        zoom_step: float = 1.1,
    ):
        self.widget = widget
        self._owner_ref = weakref.ref(owner)
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.zoom_step = zoom_step

        # drag state
        self._is_dragging = False
        self._drag_start: Optional[Tuple[int, int]] = None
        self._offset_start: Optional[Tuple[float, float]] = None

        # zoom throttle state
        self._zoom_job = None
        self._pending_delta = 0
        self._pending_pos = None

        self.widget.bind('<MouseWheel>', self._on_mousewheel)
        # Linux/X11 wheel events
        self.widget.bind('<Button-4>', lambda e: self._on_wheel_steps(e, 120))
        self.widget.bind('<Button-5>', lambda e: self._on_wheel_steps(e, -120))
        self.widget.bind('<Button-3>', self._on_pan_start)
        self.widget.bind('<B3-Motion>', self._on_pan_move)
        self.widget.bind('<ButtonRelease-3>', self._on_pan_end)
        logger.debug("ZoomPanHandler attached")

    @property
    def owner(self):
        """The editor, or None if it no longer exists."""
        return self._owner_ref()

    def detach(self):
        """Remove event bindings created by this handler."""
        for seq in ('<MouseWheel>', '<Button-4>', '<Button-5>', '<Button-3>', '<B3-Motion>', '<ButtonRelease-3>'):
            self.widget.unbind(seq)

    # ---- coordinate mapping ----
    def widget_to_canvas(self, x, y) -> Optional[Tuple[float, float]]:
        """Widget pixel -> canvas-space point under the current zoom/offset."""
        owner = self.owner
        if owner is None:
            return None
        ox, oy = owner.offset
        z = max(owner.zoom, 1e-9)
        return (float(x) - ox) / z, (float(y) - oy) / z

    def canvas_to_widget(self, x, y) -> Optional[Tuple[float, float]]:
        owner = self.owner
        if owner is None:
            return None
        ox, oy = owner.offset
        return float(x) * owner.zoom + ox, float(y) * owner.zoom + oy

    # ---- zoom ----
    def _on_mousewheel(self, event):
        self._on_wheel_steps(event, getattr(event, 'delta', 0))

    def _on_wheel_steps(self, event, delta):
        if self.owner is None or not delta:
            return
        self._pending_delta += delta
        self._pending_pos = (event.x, event.y)
        # A zoom is already scheduled; let it pick up the accumulated delta
        if self._zoom_job is not None:
            return
        self._zoom_job = self.widget.after(30, self._perform_zoom)

    def _perform_zoom(self):
        self._zoom_job = None
        raw_delta, self._pending_delta = self._pending_delta, 0
        owner = self.owner
        if owner is None or raw_delta == 0 or self._pending_pos is None:
            return

        # Normalize delta -- a wheel notch is 120; trackpads send less
        delta = int(raw_delta / 120) or (1 if raw_delta > 0 else -1)
        old_zoom = float(owner.zoom)
        step_factor = self.zoom_step ** abs(delta)
        zoom_factor = step_factor if delta > 0 else 1.0 / step_factor
        new_zoom = max(self.min_zoom, min(self.max_zoom, old_zoom * zoom_factor))
        if new_zoom == old_zoom:
            return

        # Keep the canvas point under the pointer fixed
        mouse_x, mouse_y = self._pending_pos
        anchor = self.widget_to_canvas(mouse_x, mouse_y)
        owner.zoom = new_zoom
        owner.offset = (mouse_x - anchor[0] * new_zoom, mouse_y - anchor[1] * new_zoom)
        logger.debug(f"Zoom: {old_zoom:.4f} -> {new_zoom:.4f} (delta={delta})")
        owner.refresh()

    # ---- pan ----
    def _on_pan_start(self, event):
        owner = self.owner
        if owner is None:
            return None
        self._is_dragging = True
        self._drag_start = (event.x, event.y)
        self._offset_start = tuple(owner.offset)
        self.widget.configure(cursor='fleur')
        return 'break'

    def _on_pan_move(self, event):
        owner = self.owner
        if owner is None or not self._is_dragging:
            return None
        dx = event.x - self._drag_start[0]
        dy = event.y - self._drag_start[1]
        owner.offset = (self._offset_start[0] + dx, self._offset_start[1] + dy)
        owner.refresh()
        return 'break'

    def _on_pan_end(self, event):
        self._is_dragging = False
        self.widget.configure(cursor='')
        return 'break'


__all__ = ['ZoomPanHandler']
