"""
The inference session: model lifecycle plus the single-flight execution guard.

Download and initialization are expensive and stateful, and the underlying
engine is not reentrant. ``InferenceSession`` is the only object allowed to
drive a backend, and it lets at most one ``complete`` or ``embed`` run at a time.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from .backends import InferenceBackend, create_backend
from .config import Settings, get_settings
from .errors import (
    AlreadyInProgressError,
    DealScoutError,
    DownloadError,
    EmbedError,
    InferError,
    InitError,
    SessionDestroyedError,
)
from .models import ChatMessage, CompletionOptions, CompletionResult, ModelState

ProgressCallback = Callable[[float], None]
TokenCallback = Callable[[str], None]
StateListener = Callable[[ModelState, ModelState], None]


class InferenceSession:
    """Owns one backend and mediates every call made against it.

    Parameters
    ----------
    backend : InferenceBackend
        The engine to drive.
    settings : Settings, optional
        Supplies default completion options. Defaults to ``get_settings()``.

    Notes
    -----
    Lifecycle: ``IDLE -> DOWNLOADING -> DOWNLOADED -> INITIALIZING -> READY``.
    Download and init failures revert to ``IDLE`` so a retry is possible.
    ``destroy()`` moves the session to ``ERROR`` permanently.
    """

    _instance: Optional["InferenceSession"] = None
    _instance_lock = threading.Lock()

    def __init__(self, backend: InferenceBackend, settings: Optional[Settings] = None):
        self.backend = backend
        self.settings = settings or get_settings()
        self._state = ModelState.IDLE
        self._cond = threading.Condition()
        self._busy = threading.Lock()
        self._cancel = threading.Event()
        self._download_progress = 0.0
        self._last_error: Optional[str] = None
        self._destroyed = False
        self._listeners: List[StateListener] = []
        self._warmup_pool: Optional[ThreadPoolExecutor] = None

    # --- Singleton convenience ---

    @classmethod
    def get_instance(
        cls,
        backend: Optional[InferenceBackend] = None,
        settings: Optional[Settings] = None,
    ) -> "InferenceSession":
        """Returns the process-wide session, creating it on first use."""
        with cls._instance_lock:
            if cls._instance is None or cls._instance.is_destroyed:
                settings = settings or get_settings()
                cls._instance = cls(backend or create_backend(settings), settings)
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._instance_lock:
            if cls._instance is not None:
                cls._instance.destroy()
            cls._instance = None

    # --- Observation ---

    @property
    def state(self) -> ModelState:
        with self._cond:
            return self._state

    @property
    def is_ready(self) -> bool:
        return self.state == ModelState.READY

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def download_progress(self) -> float:
        with self._cond:
            return self._download_progress

    def snapshot(self) -> Dict[str, Any]:
        with self._cond:
            return {
                "model": self.backend.model,
                "state": self._state,
                "download_progress": self._download_progress,
                "is_ready": self._state == ModelState.READY,
                "last_error": self._last_error,
            }

    def add_state_listener(self, listener: StateListener) -> None:
        """Registers ``listener(previous, current)`` for every state transition."""
        self._listeners.append(listener)

    def _transition(self, new_state: ModelState) -> None:
        with self._cond:
            if self._destroyed and new_state != ModelState.ERROR:
                return
            previous = self._state
            self._state = new_state
            self._cond.notify_all()
        logger.debug(f"Session state {previous.value} -> {new_state.value}")
        for listener in list(self._listeners):
            try:
                listener(previous, new_state)
            except Exception:
                logger.exception("State listener raised")

    def _check_alive(self) -> None:
        if self._destroyed:
            raise SessionDestroyedError("Inference session has been destroyed")

    # --- Lifecycle ---

    def _progress_reporter(self, callback: Optional[ProgressCallback]) -> ProgressCallback:
        def report(fraction: float) -> None:
            fraction = min(max(float(fraction), 0.0), 1.0)
            with self._cond:
                fraction = max(fraction, self._download_progress)
                self._download_progress = fraction
            if callback:
                callback(fraction)

        return report

    def ensure_downloaded(self, progress_callback: Optional[ProgressCallback] = None) -> None:
        """Makes sure the model artifact is present locally.

        Idempotent: once downloaded, reports ``1.0`` and returns at once.

        Raises
        ------
        AlreadyInProgressError
            Another download is running on this session.
        DownloadError
            The backend failed to fetch the model. State reverts to ``IDLE``.
        """
        self._check_alive()
        report = self._progress_reporter(progress_callback)
        with self._cond:
            if self._state == ModelState.DOWNLOADING:
                logger.error("Rejected concurrent model download on the same session")
                raise AlreadyInProgressError("Model download already in progress")
            done = self._state in (
                ModelState.DOWNLOADED,
                ModelState.INITIALIZING,
                ModelState.READY,
            )
            if not done:
                self._begin_download()
        if done:
            report(1.0)
            return
        self._download(report)

    def _begin_download(self) -> None:
        with self._cond:
            self._download_progress = 0.0
            self._transition(ModelState.DOWNLOADING)

    def _download(self, report: ProgressCallback) -> None:
        try:
            if not self.backend.is_downloaded():
                logger.info(f"Downloading model {self.backend.model}")
                self.backend.download(report)
        except Exception as e:
            with self._cond:
                self._last_error = str(e)
            self._transition(ModelState.IDLE)
            logger.error(f"Model download failed: {e}")
            if isinstance(e, DownloadError):
                raise
            raise DownloadError(f"Failed to download {self.backend.model}: {e}") from e

        report(1.0)
        self._transition(ModelState.DOWNLOADED)

    def ensure_ready(self, progress_callback: Optional[ProgressCallback] = None) -> None:
        """Makes sure the model is downloaded and loaded.

        Callers arriving while another thread is downloading or initializing
        wait for it to settle instead of starting a second run.

        Raises
        ------
        DownloadError, InitError, SessionDestroyedError
        """
        while True:
            with self._cond:
                self._check_alive()
                state = self._state
                if state == ModelState.READY:
                    return
                if state in (ModelState.DOWNLOADING, ModelState.INITIALIZING):
                    self._cond.wait_for(
                        lambda: self._state
                        not in (ModelState.DOWNLOADING, ModelState.INITIALIZING)
                    )
                    self._check_alive()
                    if self._state == ModelState.IDLE:
                        if state == ModelState.INITIALIZING:
                            raise InitError(f"Model initialization failed: {self._last_error}")
                        raise DownloadError(f"Model download failed: {self._last_error}")
                    continue
                if state == ModelState.DOWNLOADED:
                    self._transition(ModelState.INITIALIZING)
                    break
                self._begin_download()
            self._download(self._progress_reporter(progress_callback))

        try:
            logger.info(f"Initializing model {self.backend.model}")
            self.backend.initialize()
        except Exception as e:
            with self._cond:
                self._last_error = str(e)
            self._transition(ModelState.IDLE)
            logger.error(f"Model initialization failed: {e}")
            if isinstance(e, InitError):
                raise
            raise InitError(f"Failed to initialize {self.backend.model}: {e}") from e

        self._transition(ModelState.READY)
        self._check_alive()
        logger.info(f"Model {self.backend.model} ready")

    def warm_up(self, progress_callback: Optional[ProgressCallback] = None) -> Future:
        """Runs ``ensure_ready`` in the background and returns its future."""
        self._check_alive()
        if self._warmup_pool is None:
            self._warmup_pool = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="dealscout-warmup"
            )
        return self._warmup_pool.submit(self.ensure_ready, progress_callback)

    # --- Inference ---

    def _acquire(self, operation: str) -> None:
        self._check_alive()
        if not self._busy.acquire(blocking=False):
            logger.error(
                f"Rejected concurrent {operation}: another inference call is in flight"
            )
            raise AlreadyInProgressError(
                f"Cannot start {operation}: the session is already busy"
            )

    def complete(
        self,
        messages: List[ChatMessage],
        options: Optional[CompletionOptions] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        on_token: Optional[TokenCallback] = None,
    ) -> CompletionResult:
        """Runs one completion, streaming text to ``on_token``.

        Parameters
        ----------
        messages : List[ChatMessage]
            The conversation, system message first.
        options : CompletionOptions, optional
            Defaults to the configured temperature and token limit.
        tools : List[Dict[str, Any]], optional
            Native function-calling schemas.
        on_token : Callable[[str], None], optional
            Receives each text delta as it is produced.

        Returns
        -------
        CompletionResult
            ``final`` is False when the call was cancelled.

        Raises
        ------
        AlreadyInProgressError
            Another ``complete`` or ``embed`` is running on this session.
        InferError
            The backend failed while generating.
        """
        self._acquire("completion")
        try:
            self._cancel.clear()
            self.ensure_ready()
            if self._cancel.is_set():
                logger.info("Completion cancelled before generation started")
                return CompletionResult(final=False)
            options = options or CompletionOptions(
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
            )
            return self._stream_completion(messages, options, tools, on_token)
        finally:
            self._busy.release()

    def _stream_completion(self, messages, options, tools, on_token) -> CompletionResult:
        start = time.perf_counter()
        first_token_at = None
        parts: List[str] = []
        native = []
        token_count = 0
        final = True

        stream = None
        try:
            stream = self.backend.stream(messages, options, tools)
            for chunk in stream:
                if self._cancel.is_set():
                    final = False
                    break
                native.extend(chunk.tool_invocations)
                if not chunk.text:
                    continue
                if first_token_at is None:
                    first_token_at = time.perf_counter()
                parts.append(chunk.text)
                token_count += 1
                if on_token:
                    on_token(chunk.text)
        except DealScoutError:
            raise
        except Exception as e:
            logger.error(f"Completion failed: {e}")
            raise InferError(f"Completion failed: {e}") from e
        finally:
            if hasattr(stream, "close"):
                stream.close()

        if self._cancel.is_set():
            final = False
            logger.info(f"Completion cancelled after {token_count} tokens")

        end = time.perf_counter()
        generation_secs = end - first_token_at if first_token_at else 0.0
        result = CompletionResult(
            text="".join(parts),
            tool_invocations=native,
            final=final,
            token_count=token_count,
            time_to_first_token_ms=(
                (first_token_at - start) * 1000 if first_token_at else None
            ),
            total_time_ms=(end - start) * 1000,
            tokens_per_second=token_count / generation_secs if generation_secs > 0 else 0.0,
        )
        logger.debug(
            f"Completion: {token_count} tokens in {result.total_time_ms:.0f}ms "
            f"({result.tokens_per_second:.1f} tok/s)"
        )
        return result

    def embed(self, text: str) -> List[float]:
        """Returns a dense vector for ``text``.

        Raises
        ------
        AlreadyInProgressError
            Another ``complete`` or ``embed`` is running on this session.
        EmbedError
            The backend failed to embed.
        """
        self._acquire("embedding")
        try:
            self.ensure_ready()
            try:
                return self.backend.embed(text)
            except Exception as e:
                logger.error(f"Embedding failed: {e}")
                raise EmbedError(f"Embedding failed: {e}") from e
        finally:
            self._busy.release()

    def cancel(self) -> None:
        """Stops token delivery for the in-flight completion, if any."""
        self._cancel.set()
        if self._busy.locked():
            logger.info("Cancelling in-flight completion")
            self.backend.stop()

    def reset(self) -> None:
        """Clears the engine's conversational context without unloading it."""
        self._check_alive()
        self.backend.reset()
        self._cancel.clear()

    def destroy(self) -> None:
        """Releases the backend. Every later call raises ``SessionDestroyedError``."""
        with self._cond:
            if self._destroyed:
                return
            self._destroyed = True
        self._cancel.set()
        self._transition(ModelState.ERROR)
        if self._warmup_pool is not None:
            self._warmup_pool.shutdown(wait=False)
        try:
            self.backend.close()
        except Exception:
            logger.exception(f"Failed to release model {self.backend.model}")
        logger.info("Inference session destroyed")
