# Utility functions for Recrop

import logging
import os
import gi

try:
    gi.require_version("Gtk", "4.0")
    gi.require_version("Adw", "1")
except Exception:
    pass

from gi.repository import Gtk, Adw, GLib

from constants import VIDEO_SUBDIR

log = logging.getLogger("Recrop")

# ---------------- Main loop helpers ----------------

def idle_dispatch(fn, *args):
    """Run ``fn(*args)`` once on the GLib main loop."""
    def _call():
        fn(*args)
        return False
    GLib.idle_add(_call)

def get_video_directory() -> str:
    base = GLib.get_user_special_dir(GLib.UserDirectory.DIRECTORY_VIDEOS)
    if not base:
        base = os.path.join(os.path.expanduser("~"), "Videos")
    return os.path.join(base, VIDEO_SUBDIR)

def format_elapsed(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"

# ---------------- Dialogs ----------------

def _show_error(parent, title, message, secondary_text=None):
    try:
        if hasattr(Adw, "MessageDialog"):
            dlg = Adw.MessageDialog(transient_for=parent, modal=True,
                                    heading=title, body=message)
            if secondary_text:
                dlg.set_body(f"{message}\n\n{secondary_text}")
            dlg.add_response("close", "Close")
            dlg.add_css_class("error")
            dlg.connect("response", lambda d, r: d.destroy())
            dlg.present()
            return dlg
    except Exception:
        log.debug("Adw.MessageDialog unavailable; falling back to Gtk.MessageDialog")
    dlg = Gtk.MessageDialog(
        transient_for=parent,
        modal=True,
        buttons=Gtk.ButtonsType.CLOSE,
        message_type=Gtk.MessageType.ERROR,
        text=title,
        secondary_text=f"{message}\n\n{secondary_text}" if secondary_text else message
    )
    dlg.connect("response", lambda d, r: d.destroy())
    dlg.present()
    return dlg
