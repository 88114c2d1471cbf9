"""
Audio decoding for cratedig.

Decoders are keyed by file extension and play through external command line
players. The open file handle is fed to the player on stdin, and the player
resamples to the engine's output format where it supports doing so.
"""
import os
import shutil
import signal
import subprocess
import threading
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Optional, Type

from .logging_config import get_logger, DecodeError

logger = get_logger('audio')


@dataclass(frozen=True)
class OutputFormat:
    """Fixed output format every preview is resampled to."""

    sample_rate: int = 48000
    channels: int = 2
    bit_depth: int = 32


# External command cache
_command_cache: Dict[str, Optional[str]] = {}


def _find_command(cmd: str) -> Optional[str]:
    """Find an external command in PATH with caching.

    Args:
        cmd: Command name to find

    Returns:
        Path to command if found, None otherwise
    """
    if cmd in _command_cache:
        return _command_cache[cmd]
    result = shutil.which(cmd)
    _command_cache[cmd] = result
    return result


class AudioStream:
    """A decoded stream that is playing, or about to.

    ``finished`` is set when the stream is exhausted or closed.
    """

    def __init__(self) -> None:
        self.finished = threading.Event()

    def start(self) -> None:
        raise NotImplementedError("Subclasses must implement start()")

    def wait(self) -> None:
        """Block until playback finishes."""
        self.finished.wait()

    def close(self) -> None:
        raise NotImplementedError("Subclasses must implement close()")


class ProcessStream(AudioStream):
    """An external player process reading the audio file from stdin."""

    def __init__(self, cmd: List[str], handle: BinaryIO):
        super().__init__()
        self.cmd = cmd
        self.handle = handle
        self.process: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        try:
            self.process = subprocess.Popen(
                self.cmd,
                stdin=self.handle,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except (subprocess.SubprocessError, OSError) as e:
            self.finished.set()
            logger.error(f"Failed to start {self.cmd[0]}: {e}")
            raise DecodeError(f"Failed to start {os.path.basename(self.cmd[0])}: {e}")
        logger.debug(f"Started player process {self.process.pid}")

    def wait(self) -> None:
        """Block until the player exits.

        Raises:
            DecodeError: If the player failed, which is how it reports a file
                it cannot decode
        """
        returncode = 0
        if self.process is not None:
            returncode = self.process.wait()
        self.finished.set()
        if returncode not in (0, -signal.SIGTERM, -signal.SIGKILL):
            logger.warning(f"{self.cmd[0]} exited with status {returncode}")
            raise DecodeError(f"{os.path.basename(self.cmd[0])} exited with status {returncode}")

    def close(self) -> None:
        """Stop the player process group."""
        with self._lock:
            process = self.process
            if process is not None and process.poll() is None:
                try:
                    os.killpg(os.getpgid(process.pid), signal.SIGTERM)
                    logger.debug(f"Stopping player process: {process.pid}")
                    process.wait(timeout=1.0)
                except (ProcessLookupError, PermissionError) as e:
                    logger.warning(f"Process termination error: {e}")
                except subprocess.TimeoutExpired:
                    try:
                        os.killpg(os.getpgid(process.pid), signal.SIGKILL)
                        logger.warning(f"Force killed player process: {process.pid}")
                        process.wait(timeout=0.5)
                    except (ProcessLookupError, PermissionError, subprocess.TimeoutExpired) as e:
                        logger.warning(f"Force kill failed: {e}")
            self.finished.set()


class Decoder:
    """Base class for extension-specific decoders."""

    executable: str = ""

    def __init__(self, output_format: OutputFormat):
        self.output_format = output_format

    def command(self) -> List[str]:
        raise NotImplementedError("Subclasses must implement command()")

    def decode(self, handle: BinaryIO) -> AudioStream:
        """Build a stream for an open audio file handle."""
        executable = _find_command(self.executable)
        if not executable:
            raise DecodeError(f"{self.executable} not found")
        cmd = self.command()
        cmd[0] = executable
        return ProcessStream(cmd, handle)


class MPG123Decoder(Decoder):
    executable = "mpg123"

    def command(self) -> List[str]:
        cmd = [self.executable, "-q", "--no-control", "-r", str(self.output_format.sample_rate)]
        if self.output_format.channels == 2:
            cmd.append("--stereo")
        else:
            cmd.append("--mono")
        cmd.append("-")
        return cmd


class APlayDecoder(Decoder):
    """WAV playback through aplay. ALSA's plug layer converts the rate."""

    executable = "aplay"

    def command(self) -> List[str]:
        return [self.executable, "-q", "-"]


class FFPlayDecoder(Decoder):
    executable = "ffplay"

    def command(self) -> List[str]:
        fmt = self.output_format
        return [
            self.executable,
            "-nodisp",
            "-autoexit",
            "-loglevel", "quiet",
            "-af", f"aresample={fmt.sample_rate},aformat=channel_layouts={'stereo' if fmt.channels == 2 else 'mono'}",
            "-i", "pipe:0",
        ]


DECODERS: Dict[str, Type[Decoder]] = {
    ".mp3": MPG123Decoder,
    ".wav": APlayDecoder,
    ".flac": FFPlayDecoder,
}


class Codec:
    """Looks up a decoder by file extension."""

    def __init__(self, decoders: Optional[Dict[str, Type[Decoder]]] = None):
        self.decoders = dict(decoders or DECODERS)

    def decode(self, handle: BinaryIO, extension: str, output_format: OutputFormat) -> AudioStream:
        """Decode an open file into a stream resampled to ``output_format``.

        Raises:
            DecodeError: If the extension is unsupported or the player is missing
        """
        decoder_cls = self.decoders.get(extension.lower())
        if decoder_cls is None:
            raise DecodeError(f"Unsupported audio file type: {extension or '(none)'}")
        return decoder_cls(output_format).decode(handle)


def detect_available_decoders() -> Dict[str, bool]:
    """Report which extensions have a player installed."""
    available = {}
    for extension, decoder_cls in DECODERS.items():
        available[extension] = _find_command(decoder_cls.executable) is not None
        if not available[extension]:
            logger.warning(f"No {decoder_cls.executable} found, {extension} previews disabled")
    return available
