import tkinter as tk
from tkinter import ttk
from PIL import Image, ImageTk
import cv2


def to_photoimage_from_bgr_with_scale(bgr, scale=1.0, interpolation=Image.BILINEAR):
    """Convert a BGR, BGRA or gray numpy array to a Tk PhotoImage (optional scaling).

    Note: Avoids content caching so the canvas reflects the current pixels
    every time the editor redraws.

    Args:
        bgr: BGR, BGRA or grayscale numpy array
        scale: Scale factor (default=1.0)
        interpolation: PIL interpolation mode (default=Image.BILINEAR)
    """
    if bgr is None:
        return ImageTk.PhotoImage(Image.new('RGB', (1, 1)))

    scale = 1.0 if scale is None else float(scale)
    img = bgr
    if scale != 1.0:
        new_w = max(1, int(bgr.shape[1] * scale))
        new_h = max(1, int(bgr.shape[0] * scale))
        # Large upscaling -> Nearest (crisp pixels); downscaling -> Area
        if scale >= 2.0 or interpolation == Image.NEAREST:
            cv_interp = cv2.INTER_NEAREST
        elif scale < 1.0:
            cv_interp = cv2.INTER_AREA
        else:
            cv_interp = cv2.INTER_LINEAR
        img = cv2.resize(bgr, (new_w, new_h), interpolation=cv_interp)

    return ImageTk.PhotoImage(_to_pil(img))


def _to_pil(img):
    if img.ndim == 2:
        return Image.fromarray(img)
    if img.shape[2] == 4:
        return Image.fromarray(cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA), mode='RGBA')
    return Image.fromarray(cv2.cvtColor(img, cv2.COLOR_BGR2RGB))


def make_slider_row(parent, label_text, var, frm, to, is_int=False, fmt="{:.2f}", command=None, length=140):
    """Pack `label [scale] value` left to right into `parent`; returns the Scale widget.

    The value label follows `var`, so programmatic var.set() calls (e.g. after a
    tool switch) are reflected without going through `command`.
    """
    ttk.Label(parent, text=label_text).pack(side='left')
    scale = ttk.Scale(parent, from_=frm, to=to, variable=var, length=length,
                      command=command or (lambda _v: None))
    scale.pack(side='left', padx=(4, 0))
    shown = tk.StringVar()

    def _sync(*_):
        try:
            value = var.get()
        except tk.TclError:
            shown.set('')
        else:
            shown.set(str(int(round(value))) if is_int else fmt.format(value))

    var.trace_add('write', _sync)
    _sync()
    ttk.Label(parent, textvariable=shown, width=4, anchor='e').pack(side='left', padx=(4, 0))
    return scale


def attach_tooltip(widget, text):
    """Show `text` in a borderless popup while the pointer is over `widget`."""
    tip = {'win': None}

    def show_tip(_e=None):
        if tip['win'] is not None:
            return
        x = widget.winfo_rootx() + widget.winfo_width() + 8
        y = widget.winfo_rooty() + int(widget.winfo_height() * 0.5)
        win = tk.Toplevel(widget)
        tip['win'] = win
        win.wm_overrideredirect(True)
        win.wm_geometry(f"+{x}+{y}")
        frame = ttk.Frame(win, borderwidth=1, relief='solid')
        frame.pack()
        ttk.Label(frame, text=text, justify='left', padding=6).pack()

    def hide_tip(_e=None):
        w = tip.get('win')
        if w is not None:
            w.destroy()
            tip['win'] = None

    widget.bind('<Enter>', show_tip)
    widget.bind('<Leave>', hide_tip)
