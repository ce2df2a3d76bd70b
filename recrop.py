#!/usr/bin/env python3
# Recrop - crop transcode demo
# GNOME / GTK4
# Dependencies: python-gobject, gtk4, gstreamer (gst-python), libadwaita, psutil, ffmpeg, ffprobe

import warnings
warnings.filterwarnings("ignore", category=DeprecationWarning)

import gi
import subprocess
import logging
import sys
import os
import threading
import time

import psutil

try:
    gi.require_version("Gtk", "4.0")
    gi.require_version("Gst", "1.0")
    gi.require_version("Adw", "1")
except Exception as e:
    print("[ERROR] Required GI versions could not be satisfied:", e, file=sys.stderr)

from gi.repository import Gtk, Gst, Adw, GLib, Gio

from constants import (
    ENCODER, CODEC_CHECK_TIMEOUT, FFPROBE_TIMEOUT, SYSTEM_METRICS_UPDATE_INTERVAL,
    DEFAULT_WINDOW_WIDTH, DEFAULT_WINDOW_HEIGHT,
)
from exceptions import AlreadyRunningError, AssetError, StoragePermissionError, VideoLoadError
from jobs import CropRect, FailureReason, JobRunner, TranscodeJob
from media_services import check_encoder_available, probe_video_metadata
from storage import bundled_asset_path, require_writable, ensure_input_file, input_path, output_path
from utils import idle_dispatch, get_video_directory, format_elapsed, _show_error

# ---------------- Silence specific GDK/Vulkan warning ----------------
def _gdk_log_handler(domain, level, message):
    try:
        if "vkAcquireNextImageKHR" in message:
            return
    except Exception:
        pass
    try:
        GLib.log_default_handler(domain, level, message)
    except Exception:
        pass

try:
    GLib.log_set_handler("Gdk",
                         GLib.LogLevelFlags.LEVEL_WARNING | GLib.LogLevelFlags.LEVEL_ERROR | GLib.LogLevelFlags.LEVEL_CRITICAL,
                         _gdk_log_handler)
except Exception:
    pass

# ---------------- Logging ----------------
logging.basicConfig(
    level=logging.DEBUG,
    format="[%(levelname)s] %(message)s",
    stream=sys.stdout
)
log = logging.getLogger("Recrop")

Gst.init(None)

# ---------------- Crop outline ----------------

class CropOutline(Gtk.DrawingArea):
    """Draws the crop rectangle over the source video."""

    def __init__(self, crop):
        super().__init__()
        self.crop = crop
        self.video_width = None
        self.video_height = None
        self.set_can_target(False)
        self.set_draw_func(self._draw)

    def set_video_size(self, width, height):
        self.video_width = width
        self.video_height = height
        self.queue_draw()

    def _displayed_video_rect(self, widget_w, widget_h):
        # Gtk.Video letterboxes; find the area the frame actually covers
        scale = min(widget_w / self.video_width, widget_h / self.video_height)
        disp_w = self.video_width * scale
        disp_h = self.video_height * scale
        return (widget_w - disp_w) / 2, (widget_h - disp_h) / 2, scale

    def _draw(self, area, cr, width, height):
        if not self.video_width or not self.video_height:
            return
        off_x, off_y, scale = self._displayed_video_rect(width, height)
        cr.set_source_rgba(0.2, 0.6, 1.0, 0.9)
        cr.set_line_width(2.0)
        cr.rectangle(off_x + self.crop.x * scale, off_y + self.crop.y * scale,
                     self.crop.width * scale, self.crop.height * scale)
        cr.stroke()

class RecropApp(Adw.Application):
    def __init__(self):
        super().__init__(application_id="io.github.recrop.Recrop")
        self.runner = None
        self.crop = CropRect.default()
        self.video_dir = None
        self._metrics_source = None
        self._job_started_at = None

    def _build_player(self, title):
        box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=6)
        box.set_hexpand(True)
        box.set_vexpand(True)
        label = Gtk.Label(label=title, css_classes=["heading"])
        label.set_halign(Gtk.Align.START)
        box.append(label)

        overlay = Gtk.Overlay()
        overlay.set_hexpand(True)
        overlay.set_vexpand(True)
        overlay.set_size_request(320, 240)
        video = Gtk.Video()
        video.set_hexpand(True)
        video.set_vexpand(True)
        video.add_css_class("card")
        overlay.set_child(video)
        box.append(overlay)
        return box, overlay, video

    def do_activate(self):
        log.info("Activating application")
        self.win = Adw.ApplicationWindow(application=self)
        self.win.set_title("Recrop")
        self.win.set_default_size(DEFAULT_WINDOW_WIDTH, DEFAULT_WINDOW_HEIGHT)

        header = Adw.HeaderBar()
        header_box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=0)
        header_box.append(Gtk.Label(label="Recrop", css_classes=["title"]))
        header_box.append(Gtk.Label(label="Crop Transcode Demo", css_classes=["subtitle"]))
        header.set_title_widget(header_box)

        main_box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=12)
        main_box.set_margin_top(12)
        main_box.set_margin_bottom(12)
        main_box.set_margin_start(12)
        main_box.set_margin_end(12)

        toolbar_view = Adw.ToolbarView()
        toolbar_view.add_top_bar(header)
        toolbar_view.set_content(main_box)
        self.win.set_content(toolbar_view)

        players = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=12, homogeneous=True)
        players.set_vexpand(True)
        main_box.append(players)

        before_box, before_overlay, self.original_video = self._build_player("Before")
        self.crop_outline = CropOutline(self.crop)
        before_overlay.add_overlay(self.crop_outline)
        after_box, _, self.edited_video = self._build_player("After")
        players.append(before_box)
        players.append(after_box)

        # Progress and metrics
        self.info_group = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=12)
        self.info_group.set_halign(Gtk.Align.CENTER)
        self.message = Gtk.Label(label="")
        self.cpu_value = Gtk.Label(label="")
        self.cpu_value.add_css_class("dim-label")
        self.time_value = Gtk.Label(label="")
        self.time_value.add_css_class("dim-label")
        for w in (self.message, self.cpu_value, self.time_value):
            self.info_group.append(w)
        self.info_group.set_visible(False)
        main_box.append(self.info_group)

        controls = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=6)
        controls.set_halign(Gtk.Align.CENTER)
        self.crop_button = Gtk.Button(label=f"Crop {self.crop.width}x{self.crop.height}")
        self.crop_button.add_css_class("suggested-action")
        self.crop_button.connect("clicked", self.on_crop)
        self.cancel_button = Gtk.Button(label="Cancel")
        self.cancel_button.set_sensitive(False)
        self.cancel_button.connect("clicked", self.on_cancel)
        controls.append(self.crop_button)
        controls.append(self.cancel_button)
        main_box.append(controls)

        self.runner = JobRunner(dispatch=idle_dispatch)
        self.video_dir = get_video_directory()

        sample = bundled_asset_path()
        if os.path.exists(sample):
            self._set_video_file(self.original_video, sample)
            self._load_video_metadata_async(sample)
        else:
            log.warning("Bundled sample missing: %s", sample)
        self._validate_codec_async(ENCODER)

        self.win.present()

    def do_shutdown(self):
        if self.runner is not None and self.runner.cancel():
            self.runner.wait(2.0)
        Adw.Application.do_shutdown(self)

    def _set_video_file(self, video, path):
        try:
            video.set_file(Gio.File.new_for_path(path))
        except Exception as e:
            log.exception("Failed to set file on video widget")
            raise VideoLoadError(f"Failed to load video: {e}") from e

    def _load_video_metadata_async(self, path):
        def load_metadata():
            try:
                _, width, height = probe_video_metadata(path, FFPROBE_TIMEOUT)
            except (subprocess.SubprocessError, OSError, ValueError, RuntimeError) as e:
                log.warning("Could not read dimensions of %s: %s", path, e)
                return
            if width and height:
                log.info("Video dimensions: %dx%d", width, height)
                idle_dispatch(self.crop_outline.set_video_size, width, height)

        threading.Thread(target=load_metadata, daemon=True).start()

    def _validate_codec_async(self, encoder):
        """Check if codec is available asynchronously."""
        def check_codec():
            try:
                if not check_encoder_available(encoder, CODEC_CHECK_TIMEOUT):
                    idle_dispatch(
                        _show_error, self.win, "Codec Not Available",
                        f"The {encoder} encoder is not available in your FFmpeg installation.",
                        "Please install an FFmpeg build with OpenH264 support.",
                    )
            except (subprocess.SubprocessError, OSError):
                log.exception("Failed to check codec availability")

        threading.Thread(target=check_codec, daemon=True).start()

    # ---------------- Crop flow ----------------

    def on_crop(self, button):
        log.info("Crop clicked")
        self.message.set_text("Starting...")
        self.info_group.set_visible(True)
        try:
            require_writable(self.video_dir)
        except StoragePermissionError as e:
            self.message.set_text("Please allow writing to the videos folder!")
            _show_error(self.win, "Permission Error", str(e),
                        "Check the folder permissions and try again.")
            return
        # Cancel stays disabled until the runner owns the job
        self._set_busy(True, cancellable=False)

        def prepare_input():
            try:
                path = ensure_input_file(bundled_asset_path(), input_path(self.video_dir))
            except AssetError as e:
                log.error("%s", e)
                idle_dispatch(self._on_prepare_failed, str(e))
                return
            idle_dispatch(self._start_job, path)

        threading.Thread(target=prepare_input, daemon=True).start()

    def _on_prepare_failed(self, message):
        self._set_busy(False)
        self.message.set_text("Unexpected error!")
        _show_error(self.win, "Sample Missing", message)

    def _start_job(self, path):
        job = TranscodeJob(input_path=path, output_path=output_path(self.video_dir), crop=self.crop)
        try:
            self.runner.start(job, self._on_progress, self._on_complete)
        except AlreadyRunningError as e:
            log.warning("%s", e)
            self.message.set_text("A crop is already running")
            return
        self._job_started_at = time.time()
        psutil.cpu_percent(interval=None)
        self._metrics_source = GLib.timeout_add(
            int(SYSTEM_METRICS_UPDATE_INTERVAL * 1000), self._update_system_metrics)
        self.cancel_button.set_sensitive(True)

    def on_cancel(self, button):
        if self.runner.cancel():
            self.message.set_text("Cancelling...")

    def _on_progress(self, percent):
        self.message.set_text(f"{percent}%")

    def _on_complete(self, result):
        self._stop_metrics()
        self._set_busy(False)
        if result.succeeded:
            self.info_group.set_visible(False)
            try:
                self._set_video_file(self.edited_video, result.job.output_path)
            except VideoLoadError as e:
                _show_error(self.win, "Playback Failed", str(e))
            return
        if result.cancelled:
            self.message.set_text("Cancelled")
            return

        self.message.set_text("Unexpected error!")
        if result.reason is FailureReason.PROBE:
            _show_error(self.win, "Metadata Error", "Failed to read the input duration.", result.error)
        elif result.reason is FailureReason.TOOL_MISSING:
            _show_error(self.win, "Crop Failed",
                        "ffmpeg is not installed or not found in PATH.\n\nPlease install ffmpeg to crop videos.")
        else:
            details = "\n".join(result.log_tail[-5:])
            _show_error(self.win, "Crop Failed", result.error or "ffmpeg reported an error.", details or None)

    def _set_busy(self, busy, cancellable=True):
        self.crop_button.set_sensitive(not busy)
        self.cancel_button.set_sensitive(busy and cancellable)

    def _update_system_metrics(self):
        if not self.runner.is_running:
            self._metrics_source = None
            return False
        self.cpu_value.set_text(f"CPU {psutil.cpu_percent(interval=None):.1f}%")
        self.time_value.set_text(format_elapsed(time.time() - self._job_started_at))
        return True

    def _stop_metrics(self):
        if self._metrics_source is not None:
            GLib.source_remove(self._metrics_source)
            self._metrics_source = None
        self.cpu_value.set_text("")
        self.time_value.set_text("")

def main():
    app = RecropApp()
    return app.run(None)

if __name__ == "__main__":
    sys.exit(main())
