"""surface_markup package: surface masks, strokes, compositing and export."""

from .config import MARKUP_DEFAULTS, MarkupConfig
from .surfaces import SurfaceKind, SurfaceMask
from .mask_extraction import ClassTensor, argmax_class_map, extract_surfaces, find_surface
from .strokes import Stroke, StrokeLedger, Tool
from .geometry import CanvasGeometry, Size, scale_factor, to_canvas_space, to_pixel_space
from .compositor import render_composite, render_mask_layer
from .edit_diff import has_visible_markup, rasterize_markup
from .encoder import EncodedImage, encode_bytes_within_budget, encode_within_budget
from .detection import SurfaceDetector
from .session import EditorMode, MarkupResult, MarkupSession
from .startup import initialize

__all__ = [
    'MARKUP_DEFAULTS', 'MarkupConfig',
    'SurfaceKind', 'SurfaceMask',
    'ClassTensor', 'argmax_class_map', 'extract_surfaces', 'find_surface',
    'Stroke', 'StrokeLedger', 'Tool',
    'CanvasGeometry', 'Size', 'scale_factor', 'to_canvas_space', 'to_pixel_space',
    'render_composite', 'render_mask_layer',
    'has_visible_markup', 'rasterize_markup',
    'EncodedImage', 'encode_bytes_within_budget', 'encode_within_budget',
    'SurfaceDetector',
    'EditorMode', 'MarkupResult', 'MarkupSession',
    'initialize',
]
