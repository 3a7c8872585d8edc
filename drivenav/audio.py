"""Audio/Text-to-speech channel for drivenav."""

import locale
import queue
import subprocess
import threading
from typing import Callable, Optional

from .config import CONFIG
from .logger import Logger

DEFAULT_LANGUAGE = "en-US"


def device_language_code() -> str:
    """Language of the device locale as a code like 'de-DE', or en-US"""
    try:
        code = locale.getlocale()[0]
    except ValueError:
        code = None
    if not code or code in ("C", "POSIX"):
        return DEFAULT_LANGUAGE
    return code.split(".")[0].replace("_", "-")


def match_voice(code: str, available) -> Optional[str]:
    """Voice name for a language code: exact match first, then the bare language"""
    code = code.lower()
    if code in available:
        return code
    primary = code.split("-")[0]
    if primary in available:
        return primary
    return None


def _voice_languages(voice) -> set:
    languages = set()
    for lang in getattr(voice, "languages", None) or []:
        if isinstance(lang, bytes):
            # espeak driver prefixes the code with a priority byte
            lang = lang.decode("ascii", "ignore").strip("\x00\x05")
        languages.add(lang.replace("_", "-").lower())
    return languages


class VoiceAssistant:
    """Text-to-speech for maneuver announcements.

    Messages are spoken one at a time on a worker thread. A new message
    flushes anything still queued and cuts off the one being spoken, so the
    driver always hears the most recent instruction. Every message carries a
    generation number; the worker skips a message whose generation is no
    longer current.
    """

    def __init__(self, rate: Optional[int] = None, callback: Optional[Callable[[str], None]] = None,
                 logger: Optional[Logger] = None, enabled: bool = True):
        self.rate = rate if rate is not None else CONFIG["voice_rate"]
        self.callback = callback  # for debug GUI
        self.logger = logger
        self.enabled = enabled
        self.language = DEFAULT_LANGUAGE
        self._voice: Optional[str] = None  # espeak voice for self.language
        self._queue: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._current: Optional[subprocess.Popen] = None
        self._generation = 0
        self._lock = threading.Lock()
        self._engine = None  # pyttsx3 fallback, created lazily

    def set_callback(self, callback: Optional[Callable[[str], None]]):
        """Set callback function for audio events"""
        self.callback = callback

    # ------------------------------------------------------------------
    # Language
    # ------------------------------------------------------------------

    def available_languages(self) -> Optional[set]:
        """Lower-case language codes espeak can speak. None if espeak is missing."""
        try:
            result = subprocess.run(["espeak", "--voices"], capture_output=True,
                                    text=True, timeout=5)
        except FileNotFoundError:
            return None
        except (subprocess.TimeoutExpired, OSError) as e:
            self._log("Listing voices failed", {"error": str(e)})
            return set()
        languages = set()
        # Columns: Pty Language Age/Gender VoiceName File ...
        for line in result.stdout.splitlines()[1:]:
            parts = line.split()
            if len(parts) >= 2:
                languages.add(parts[1].lower())
        return languages

    def is_language_available(self, code: str) -> bool:
        available = self.available_languages()
        return available is None or match_voice(code, available) is not None

    def set_language(self, code: Optional[str] = None) -> str:
        """Speak in the given language, the device locale when None.

        Falls back to en-US when espeak has no voice for it. Without espeak
        the code is kept and the pyttsx3 engine picks the closest voice.
        Returns the language actually set.
        """
        code = code or device_language_code()
        available = self.available_languages()
        voice = None
        if available is not None:
            voice = match_voice(code, available)
            if voice is None:
                self._log("Voice language not available", {"requested": code, "using": DEFAULT_LANGUAGE})
                code = DEFAULT_LANGUAGE
                voice = match_voice(code, available)
        with self._lock:
            self.language = code
            self._voice = voice
            self._engine = None
        self._log("Voice language set", {"language": code, "voice": voice})
        return code

    # ------------------------------------------------------------------
    # Speaking
    # ------------------------------------------------------------------

    def speak(self, text: str):
        """Queue a message, discarding anything not yet spoken"""
        if self.callback:
            self.callback(text)
        if not self.enabled:
            print(f"[AUDIO] {text}")
            return
        with self._lock:
            self._generation += 1
            generation = self._generation
        self._flush()
        self._queue.put((generation, text))
        self._ensure_worker()

    def stop(self):
        """Silence the channel and stop the worker"""
        with self._lock:
            self._generation += 1
        self._flush()
        if self._thread is not None and self._thread.is_alive():
            self._queue.put(None)
            self._thread.join(timeout=2)
        self._thread = None

    def _ensure_worker(self):
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._worker, name="drivenav-voice", daemon=True)
                self._thread.start()

    def _flush(self):
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        with self._lock:
            process = self._current
        if process is not None and process.poll() is None:
            process.terminate()

    def _worker(self):
        while True:
            item = self._queue.get()
            if item is None:
                break
            generation, text = item
            self._say(text, generation)

    def _say(self, text: str, generation: int):
        """Speak text using espeak (available in Termux)"""
        args = ["espeak", "-s", str(self.rate)]
        if self._voice:
            args += ["-v", self._voice]
        args.append(text)
        process = None
        try:
            with self._lock:
                if generation != self._generation:
                    return
                process = subprocess.Popen(args, stdout=subprocess.DEVNULL,
                                           stderr=subprocess.DEVNULL)
                self._current = process
            process.wait(timeout=30)
        except FileNotFoundError:
            if generation == self._generation:
                self._say_pyttsx3(text)
        except subprocess.TimeoutExpired:
            process.kill()
        except OSError as e:
            print(f"Audio error: {e}")
            print(f"[AUDIO] {text}")
        finally:
            with self._lock:
                self._current = None

    def _say_pyttsx3(self, text: str):
        # Fallback: try pyttsx3
        try:
            import pyttsx3
            if self._engine is None:
                self._engine = pyttsx3.init()
                self._engine.setProperty("rate", self.rate)
                self._select_pyttsx3_voice(self._engine)
            self._engine.say(text)
            self._engine.runAndWait()
        except Exception as e:
            self._log("Speech fallback failed", {"error": str(e)})
            print(f"[AUDIO] {text}")

    def _select_pyttsx3_voice(self, engine):
        voices = engine.getProperty("voices") or []
        for wanted in (self.language, DEFAULT_LANGUAGE):
            for voice in voices:
                if match_voice(wanted, _voice_languages(voice)):
                    engine.setProperty("voice", voice.id)
                    return

    def _log(self, message: str, data: Optional[dict] = None):
        if self.logger:
            self.logger.log(message, data)
