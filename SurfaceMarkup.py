import tkinter as tk
from tkinter import ttk

from surface_markup import startup
from tabs.markup_editor import MarkupEditorFrame


class MarkupApp(tk.Tk):
    def __init__(self):
        super().__init__()
        self.title('Surface Markup')
        self.geometry('1100x700')
        self.after(100, self.lift)

        # Notebook tabs: Editor
        self.notebook = ttk.Notebook(self)
        self.notebook.pack(fill='both', expand=True)

        self.statusbar = ttk.Label(self, text='Ready')
        self.statusbar.pack(fill='x', side='bottom')

        editor_tab = ttk.Frame(self.notebook)
        self.notebook.add(editor_tab, text='Editor')

        def on_export(result):
            self.set_status(f'Exported {result.encoded.width}×{result.encoded.height} '
                            f'at quality {result.encoded.quality}')

        self._editor_frame = MarkupEditorFrame(editor_tab, on_export=on_export, status_callback=self.set_status)
        self._editor_frame.pack(fill='both', expand=True)
        self.protocol('WM_DELETE_WINDOW', self.on_close)

    def set_status(self, txt):
        self.statusbar.config(text=txt)

    def on_close(self):
        self._editor_frame.session.wait_for_diffs(timeout=1.0)
        self.destroy()


def main():
    startup.initialize()
    app = MarkupApp()
    app.mainloop()


if __name__ == '__main__':
    main()
