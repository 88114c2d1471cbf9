"""
Single-flight audio preview engine.

Only one file decodes and plays at a time. ``request_play`` closes whatever
is playing, bumps a generation counter and hands the path to the worker
thread. The worker drops any request whose generation is no longer the
latest, so among requests issued while busy the most recent one is the one
that plays.

The device lock guards the open stream and the generation counter together.
A request that arrives while the worker is still decoding an older file
either finds the stream installed (and closes it) or makes the worker see a
stale generation before it installs the stream; there is no window where
an older stream can start playing unobserved.
"""
import os
import queue
import threading
from enum import Enum
from typing import List, Optional, Tuple

from .audio import AudioStream, Codec, OutputFormat
from .logging_config import get_logger, CrateDigError, DecodeError

logger = get_logger('preview')


class EngineState(Enum):
    IDLE = "idle"
    PLAYING = "playing"


class PreviewEngine:
    """Plays previews of audio files, one at a time."""

    def __init__(self, codec: Optional[Codec] = None, output_format: Optional[OutputFormat] = None):
        self.codec = codec or Codec()
        self.output_format = output_format or OutputFormat()
        self.state = EngineState.IDLE
        self.current_path: Optional[str] = None

        self._device_lock = threading.Lock()
        self._stream: Optional[AudioStream] = None
        self._generation = 0
        self._closed = False

        # Single slot; request_play waits until the worker has taken it
        self._requests: "queue.Queue[Optional[Tuple[str, int]]]" = queue.Queue(maxsize=1)
        self._messages: "queue.Queue[str]" = queue.Queue()

        self._worker = threading.Thread(target=self._run, name="PreviewWorker", daemon=True)
        self._worker.start()

    @property
    def pending_generation(self) -> int:
        """Generation of the most recent request."""
        with self._device_lock:
            return self._generation

    def request_play(self, path: str) -> None:
        """Stop the current preview and queue ``path`` to play next.

        Blocks only until the worker receives the request, never on
        playback itself.
        """
        if self._closed:
            return
        with self._device_lock:
            self._generation += 1
            generation = self._generation
            if self._stream is not None:
                self._stream.close()
        logger.debug(f"Requested preview {generation}: {path}")
        self._requests.put((path, generation))
        self._requests.join()

    def stop(self) -> None:
        """Stop the current preview without queueing another."""
        with self._device_lock:
            self._generation += 1
            if self._stream is not None:
                self._stream.close()

    def drain_messages(self) -> List[str]:
        """Collect error messages reported by the worker since last call."""
        messages = []
        while True:
            try:
                messages.append(self._messages.get_nowait())
            except queue.Empty:
                return messages

    def close(self) -> None:
        """Release the open stream and stop the worker."""
        with self._device_lock:
            if self._closed:
                return
            self._closed = True
            self._generation += 1
            if self._stream is not None:
                self._stream.close()
        try:
            self._requests.put_nowait(None)
        except queue.Full:
            logger.warning("Preview queue busy at shutdown")
        self._worker.join(timeout=2.0)
        logger.info("Preview engine closed")

    def _run(self) -> None:
        while True:
            request = self._requests.get()
            self._requests.task_done()
            if request is None:
                return
            path, generation = request
            with self._device_lock:
                superseded = generation != self._generation
            if superseded:
                logger.debug(f"Dropped superseded preview {generation}: {path}")
                continue
            try:
                self._play(path, generation)
            except CrateDigError as e:
                logger.error(f"Preview failed for {path}: {e}")
                self._messages.put(f"Cannot play {os.path.basename(path)}: {e}")
            except OSError as e:
                logger.error(f"Preview failed for {path}: {e}")
                self._messages.put(f"Cannot open {os.path.basename(path)}: {e.strerror or e}")
            except Exception as e:
                logger.exception(f"Unexpected preview failure for {path}")
                self._messages.put(f"Cannot play {os.path.basename(path)}: {e}")
            finally:
                self.state = EngineState.IDLE
                self.current_path = None

    def _play(self, path: str, generation: int) -> None:
        extension = os.path.splitext(path)[1]
        with open(path, "rb") as handle:
            stream = self.codec.decode(handle, extension, self.output_format)
            with self._device_lock:
                if generation != self._generation:
                    logger.debug(f"Preview {generation} superseded while decoding")
                    stream.close()
                    return
                try:
                    stream.start()
                except DecodeError:
                    stream.close()
                    raise
                self._stream = stream
                self.state = EngineState.PLAYING
                self.current_path = path
            logger.info(f"Playing file: {path} ({self.output_format})")
            try:
                stream.wait()
            except DecodeError:
                with self._device_lock:
                    superseded = generation != self._generation
                if not superseded:
                    raise
                logger.debug(f"Ignored exit of superseded preview {generation}")
            finally:
                with self._device_lock:
                    if self._stream is stream:
                        self._stream = None
                stream.close()
