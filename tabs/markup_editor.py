"""
Surface markup editor tab: paint/erase strokes over a photo, accept a
detected surface, undo/redo and export the flattened JPEG.
"""

import logging
import os
import tkinter as tk
from tkinter import filedialog, messagebox, ttk

import cv2
import numpy as np

from surface_markup import (
    EditorMode,
    MarkupSession,
    Size,
    SurfaceKind,
    Tool,
    extract_surfaces,
    find_surface,
    render_composite,
)
from surface_markup.errors import MarkupError
from surface_markup.ui_helpers import attach_tooltip, make_slider_row, to_photoimage_from_bgr_with_scale
from surface_markup.zoom_handler import ZoomPanHandler

logger = logging.getLogger(__name__)


class MarkupEditorFrame(tk.Frame):
    """Embeddable markup editor as a tkinter Frame."""

    def __init__(self, master=None, mode=EditorMode.MANUAL_ONLY, detector=None, on_export=None, status_callback=None):
        super().__init__(master)
        self._on_export = on_export
        self._status_cb = status_callback or (lambda txt: None)
        self._detector = detector

        self.session = MarkupSession(
            mode=mode,
            dispatch=lambda fn: self.after(0, fn),
            on_change=lambda _s: self._on_session_change(),
        )

        # Data
        self.photo = None          # full-resolution BGR
        self._display_photo = None  # photo resized to canvas space
        self._tk_image = None
        self._live_points = []
        self._live_item = None

        # View state: canvas space is the photo fitted into the widget at load time
        self.zoom = 1.0
        self.offset = (0.0, 0.0)

        self._build_toolbar()
        self.status = ttk.Label(self, text="Open a photo to start marking surfaces…", anchor="w")
        self.status.pack(side="bottom", fill="x")
        self.canvas = tk.Canvas(self, bg="gray20", highlightthickness=0)
        self.canvas.pack(side="top", fill="both", expand=True)

        self.canvas.bind('<Button-1>', self._on_paint_start)
        self.canvas.bind('<B1-Motion>', self._on_paint_move)
        self.canvas.bind('<ButtonRelease-1>', self._on_paint_end)
        self.canvas.bind('<Configure>', lambda e: self.refresh())
        self.zoom_handler = ZoomPanHandler(widget=self.canvas, owner=self)
        self._bind_to_toplevel("<Control-z>", lambda e: self.undo())
        self._bind_to_toplevel("<Control-y>", lambda e: self.redo())

    # ---- UI construction ----
    def _build_toolbar(self):
        bar = ttk.Frame(self)
        bar.pack(side="top", fill="x")
        header = ttk.Frame(bar)
        header.pack(side='top', anchor='w', fill='x', pady=(0, 4))
        ttk.Label(header, text='Surface Markup', font=('Segoe UI', 10, 'bold')).pack(side='left')
        help_icon = tk.Canvas(header, width=18, height=18, highlightthickness=0)
        help_icon.create_oval(2, 2, 16, 16, outline='#666', width=1)
        help_icon.create_text(9, 9, text='?', font=('Segoe UI', 9))
        help_icon.pack(side='left', padx=(6, 0))
        attach_tooltip(help_icon, (
            'Controls:\n'
            '- Left-click drag to paint or erase\n'
            '- Right-click drag to move image\n'
            '- Mouse wheel to zoom\n'
            '\n'
            'Features:\n'
            '- Open Photo: image to mark up\n'
            '- Open Class Map: accept the selected surface from a segmentation output (.npy)\n'
            '- Clear Surface: remove the accepted surface highlight\n'
            '- Export: flatten and save as JPEG within the size budget\n'
        ))

        body = ttk.Frame(bar)
        body.pack(side='top', fill='x')
        ttk.Button(body, text="Open Photo", command=self.open_photo).pack(side='left')
        ttk.Button(body, text="Open Class Map", command=self.open_class_map).pack(side='left', padx=(4, 0))
        self.kind_var = tk.StringVar(value=SurfaceKind.WALL.value)
        ttk.Combobox(body, textvariable=self.kind_var, width=8, state='readonly',
                     values=[k.value for k in SurfaceKind]).pack(side='left', padx=(4, 0))
        self.btn_clear_surface = ttk.Button(body, text="Clear Surface", command=self.clear_surface, state="disabled")
        self.btn_clear_surface.pack(side='left', padx=(4, 0))
        ttk.Separator(body, orient="vertical").pack(side='left', fill='y', padx=6)

        self.tool_var = tk.StringVar(value=Tool.PAINT.value)
        ttk.Radiobutton(body, text="Brush", value=Tool.PAINT.value, variable=self.tool_var,
                        command=self._on_tool_selected).pack(side='left')
        ttk.Radiobutton(body, text="Eraser", value=Tool.ERASE.value, variable=self.tool_var,
                        command=self._on_tool_selected).pack(side='left')
        slider_box = ttk.Frame(body)
        slider_box.pack(side='left', padx=6)
        lo, hi = self.session.config.brush_width_range
        self.width_var = tk.DoubleVar(value=self.session.current_width)
        make_slider_row(slider_box, "Brush width", self.width_var, lo, hi, is_int=True,
                        command=lambda _=None: self.session.set_brush_width(self.width_var.get()))
        ttk.Separator(body, orient="vertical").pack(side='left', fill='y', padx=6)

        self.btn_undo = ttk.Button(body, text="Undo", command=self.undo, state="disabled")
        self.btn_undo.pack(side='left')
        self.btn_redo = ttk.Button(body, text="Redo", command=self.redo, state="disabled")
        self.btn_redo.pack(side='left', padx=(4, 0))
        self.btn_export = ttk.Button(body, text="Export…", command=self.export, state="disabled")
        self.btn_export.pack(side='left', padx=(12, 0))

    def _bind_to_toplevel(self, sequence, func):
        self.winfo_toplevel().bind(sequence, func)

    def set_status(self, text):
        self.status.config(text=text)
        self._status_cb(text)

    # ---- loading ----
    def open_photo(self):
        path = filedialog.askopenfilename(parent=self.winfo_toplevel(), title="Open photo",
                                          filetypes=[("Images", ("*.png", "*.jpg", "*.jpeg", "*.tif", "*.tiff"))])
        if not path:
            return
        img = cv2.imread(path, cv2.IMREAD_COLOR)
        if img is None:
            messagebox.showerror("Open error", "Failed to read the image")
            return
        self.set_photo(img)
        self.set_status(f"Loaded: {os.path.basename(path)} ({img.shape[1]}×{img.shape[0]})")
        if self.session.mode.is_auto_detect and self._detector is not None:
            self.session.run_auto_detect(img, self._detector)

    def set_photo(self, photo: np.ndarray):
        """Show `photo` and fix canvas space to its fit in the current widget."""
        self.photo = photo
        h, w = photo.shape[:2]
        cw = max(1, self.canvas.winfo_width())
        ch = max(1, self.canvas.winfo_height())
        fit = max(1e-6, min(cw / w, ch / h))
        canvas_size = Size(max(1, int(round(w * fit))), max(1, int(round(h * fit))))
        self._display_photo = cv2.resize(photo, (int(canvas_size.width), int(canvas_size.height)),
                                         interpolation=cv2.INTER_AREA)
        self.zoom = 1.0
        self.offset = ((cw - canvas_size.width) / 2.0, (ch - canvas_size.height) / 2.0)
        # strokes and surfaces belong to the previous photo's canvas
        self.session.reset()
        self.session.update_canvas_size(canvas_size)
        self.refresh()

    def open_class_map(self):
        path = filedialog.askopenfilename(parent=self.winfo_toplevel(), title="Open class map",
                                          filetypes=[("NumPy arrays", "*.npy")])
        if not path:
            return
        try:
            output = np.load(path)
        except (OSError, ValueError) as e:
            messagebox.showerror("Open error", str(e))
            return
        kind = SurfaceKind(self.kind_var.get())
        found = find_surface(extract_surfaces(output, min_coverage=self.session.config.min_coverage), kind)
        if found is None:
            self.set_status(f"{kind.display_name} not detected — draw manually")
            return
        self.session.accept_detected_mask(found)
        self.set_status(f"Accepted {found.display_name}: {found.coverage_percent:.1f}% of the image")

    # ---- session actions ----
    def _on_tool_selected(self):
        self.session.select_tool(Tool(self.tool_var.get()))
        self.width_var.set(self.session.current_width)

    def clear_surface(self):
        self.session.accept_detected_mask(None)

    def undo(self):
        self.session.undo()

    def redo(self):
        self.session.redo()

    def _on_session_change(self):
        s = self.session
        self.btn_undo.config(state="normal" if s.can_undo else "disabled")
        self.btn_redo.config(state="normal" if s.can_redo else "disabled")
        self.btn_clear_surface.config(state="normal" if s.mask is not None else "disabled")
        self.btn_export.config(state="normal" if (s.has_markup and not s.is_processing) else "disabled")
        if s.error_message:
            self.set_status(s.error_message)
        elif s.is_processing:
            self.set_status(s.processing_status)
        self.refresh()

    def export(self):
        if self.photo is None:
            return
        path = filedialog.asksaveasfilename(parent=self.winfo_toplevel(), title="Export markup",
                                            defaultextension=".jpg", filetypes=[("JPEG", "*.jpg")])
        if not path:
            return

        def on_done(result):
            with open(path, 'wb') as fh:
                fh.write(result.image_data)
            self.set_status(f"Saved: {os.path.basename(path)} ({len(result.image_data)} bytes)")
            if self._on_export is not None:
                self._on_export(result)

        def on_error(err):
            messagebox.showerror("Export error", str(err))

        self.session.start_finalize(self.photo, on_done=on_done, on_error=on_error)

    # ---- painting ----
    def _on_paint_start(self, event):
        if self.photo is None:
            return
        self._live_points = [self.zoom_handler.widget_to_canvas(event.x, event.y)]

    def _on_paint_move(self, event):
        if not self._live_points:
            return
        self._live_points.append(self.zoom_handler.widget_to_canvas(event.x, event.y))
        coords = []
        for pt in self._live_points:
            coords.extend(self.zoom_handler.canvas_to_widget(*pt))
        width = max(1.0, self.session.current_width * self.zoom)
        color = "#bebebe" if self.session.tool is Tool.PAINT else "#333333"
        if self._live_item is None:
            self._live_item = self.canvas.create_line(*coords, fill=color, width=width,
                                                      capstyle='round', joinstyle='round')
        else:
            self.canvas.coords(self._live_item, *coords)

    def _on_paint_end(self, event):
        points, self._live_points = self._live_points, []
        if self._live_item is not None:
            self.canvas.delete(self._live_item)
            self._live_item = None
        if self.session.add_stroke(points) is None:
            return
        self.refresh()

    # ---- display ----
    def refresh(self):
        """Redraw photo + markup at canvas resolution, scaled by the zoom."""
        self.canvas.delete("photo")
        if self._display_photo is None:
            return
        s = self.session
        try:
            frame = render_composite(self._display_photo, s.mask, s.strokes, s.canvas_size,
                                     s.config.highlight_color)
        except MarkupError as e:
            logger.error(f"Preview failed: {e}")
            self.set_status(str(e))
            return
        self._tk_image = to_photoimage_from_bgr_with_scale(frame, scale=self.zoom)
        self.canvas.create_image(self.offset[0], self.offset[1], anchor='nw', image=self._tk_image, tags="photo")
        self.canvas.tag_lower("photo")
