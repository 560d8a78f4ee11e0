"""
Progress Loader System

Animated terminal indicators for the long-running CLI commands (indexing,
searching, talking to the model server) and a streaming printer for generated
text. Animations only run when the output stream is a terminal, so piping the
CLI output or capturing it in tests produces plain text.
"""

import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, TextIO


class LoaderStyle(Enum):
    """Different styles of progress loaders."""
    SPINNER = "spinner"
    NETWORK = "network"


ANIMATIONS = {
    LoaderStyle.SPINNER: ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"],
    LoaderStyle.NETWORK: ["📡", "📶", "🌐", "🔗"],
}


@dataclass
class LoaderConfig:
    """Configuration for a progress loader."""
    task_name: str
    style: LoaderStyle = LoaderStyle.SPINNER
    update_interval: float = 0.15
    show_elapsed: bool = True


class StreamingLoader:
    """Prints streamed text fragments as they arrive, framed by a header and footer."""

    def __init__(self, task_name: str = "Response", stream: Optional[TextIO] = None):
        self.task_name = task_name
        self.stream = stream or sys.stdout
        self.is_active = False
        self.streamed_text = ""
        self.start_time = time.time()
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            if self.is_active:
                return
            self.is_active = True
            self.start_time = time.time()
            self.streamed_text = ""

        self.stream.write(f"\n🤖 {self.task_name}:\n")
        self.stream.write("─" * 60 + "\n")
        self.stream.flush()

    def stream_text(self, text_chunk: str):
        """Write a fragment of text without adding line breaks."""
        with self._lock:
            if not self.is_active:
                return
            self.streamed_text += text_chunk
            self.stream.write(text_chunk)
            self.stream.flush()

    def finish(self, final_message: Optional[str] = None, success: bool = True):
        """Close the output; the completion line is only written on success."""
        with self._lock:
            if not self.is_active:
                return
            self.is_active = False

        elapsed = time.time() - self.start_time
        if self.streamed_text and not self.streamed_text.endswith("\n"):
            self.stream.write("\n")
        self.stream.write("─" * 60 + "\n")
        if success:
            self.stream.write(f"✅ {final_message or self.task_name + ' completed'} ({elapsed:.1f}s)\n")
        self.stream.flush()


class ProgressLoader:
    """Animated progress loader that keeps the terminal active while a task runs."""

    def __init__(self, config: LoaderConfig, stream: Optional[TextIO] = None):
        self.config = config
        self.stream = stream or sys.stdout
        self.is_running = False
        self.thread: Optional[threading.Thread] = None
        self.start_time: Optional[float] = None
        self.current_frame = 0
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    @property
    def animated(self) -> bool:
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def start(self):
        """Start the progress loader animation."""
        with self._lock:
            if self.is_running:
                return
            self.is_running = True
            self.start_time = time.time()
            self._stop_event.clear()
            self.current_frame = 0

        if self.animated:
            self.thread = threading.Thread(target=self._animate, daemon=True)
            self.thread.start()

    def stop(self, success_message: Optional[str] = None):
        """Stop the loader and optionally show a success message."""
        with self._lock:
            if not self.is_running:
                return
            self.is_running = False
            self._stop_event.set()

        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=0.5)

        if self.animated:
            self.stream.write("\r" + " " * 120 + "\r")
        if success_message:
            elapsed = time.time() - (self.start_time or 0)
            self.stream.write(f"✅ {success_message} ({elapsed:.1f}s)\n")
        self.stream.flush()

    def _animate(self):
        frames = self._get_animation_frames()
        while not self._stop_event.is_set():
            with self._lock:
                task_name = self.config.task_name
                show_elapsed = self.config.show_elapsed

            elapsed_str = ""
            if show_elapsed:
                elapsed_str = f" ({time.time() - (self.start_time or 0):.1f}s)"

            line = f"\r{frames[self.current_frame % len(frames)]} {task_name}{elapsed_str}"
            if len(line) > 115:
                line = line[:112] + "..."

            try:
                self.stream.write(line)
                self.stream.flush()
            except (OSError, ValueError):
                # Output stream went away; nothing left to animate
                break

            self.current_frame += 1
            if self._stop_event.wait(self.config.update_interval):
                break

    def _get_animation_frames(self) -> List[str]:
        return ANIMATIONS.get(self.config.style, ANIMATIONS[LoaderStyle.SPINNER])


@contextmanager
def show_progress(task_name: str, style: LoaderStyle = LoaderStyle.SPINNER,
                  stream: Optional[TextIO] = None):
    """Show progress for a task."""
    loader = ProgressLoader(LoaderConfig(task_name=task_name, style=style), stream=stream)
    loader.start()
    try:
        yield loader
    finally:
        loader.stop()


@contextmanager
def network_progress(operation: str = "Connecting", stream: Optional[TextIO] = None):
    """Show progress for requests to the model server."""
    with show_progress(f"🌐 {operation}", LoaderStyle.NETWORK, stream=stream) as loader:
        yield loader


@contextmanager
def streaming_progress(task_name: str = "Response", stream: Optional[TextIO] = None):
    """Print streamed text between a header and a completion footer."""
    loader = StreamingLoader(task_name, stream=stream)
    loader.start()
    try:
        yield loader
    except BaseException:
        loader.finish(success=False)
        raise
    loader.finish()
