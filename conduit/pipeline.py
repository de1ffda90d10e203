"""
Session pipeline for Conduit.

The Pipeline runs one record -> validate -> transcribe -> deliver pass as a
linear state machine. Every component failure jumps straight to ABORTED, and
the session's ResourceJanitor releases processes and temporary files on every
exit path, including user interrupts.

Example:
    >>> pipeline = Pipeline(load_config())
    >>> pipeline.on_state_changed = lambda old, new: print(new.name)
    >>> exit_code = pipeline.run()
"""

import logging
from enum import Enum, auto
from pathlib import Path
from threading import Lock
from typing import Callable, Optional, cast

from .audio import (
    AudioBackendSelector,
    ExitOutcome,
    IndicatorCapability,
    ProcessSupervisor,
    select_indicator,
    validate_audio,
)
from .config import Config
from .exceptions import ConduitError, ExitCode
from .notify import Notifier
from .output import DeliveryOutcome, OutputDispatcher
from .session import (
    CancellationToken,
    RecordingSession,
    ResourceJanitor,
    ResourceKind,
    SessionOutcome,
    cancellation_scope,
)
from .transcription import Success, TranscriptionClient, result_to_error

logger = logging.getLogger(__name__)

_UNSET = object()

# Characters of the transcript shown in the success notification
PREVIEW_LENGTH = 50

SupervisorFactory = Callable[[RecordingSession, ResourceJanitor], ProcessSupervisor]


class PipelineState(Enum):
    """
    States of one Conduit session.

    - IDLE: Nothing started yet.
    - CAPABILITY_SELECTED: A recorder backend was chosen.
    - RECORDING: The recorder is running.
    - VALIDATING: The recording is being checked before upload.
    - TRANSCRIBING: The audio is being sent to the API.
    - DISPATCHING: The text is being copied and pasted.
    - DONE: The text was delivered.
    - ABORTED: The session failed or was cancelled.

    State transitions:
        IDLE -> CAPABILITY_SELECTED -> RECORDING -> VALIDATING ->
        TRANSCRIBING -> DISPATCHING -> DONE
        any non-terminal state -> ABORTED
    """

    IDLE = auto()
    CAPABILITY_SELECTED = auto()
    RECORDING = auto()
    VALIDATING = auto()
    TRANSCRIBING = auto()
    DISPATCHING = auto()
    DONE = auto()
    ABORTED = auto()


TERMINAL_STATES = frozenset({PipelineState.DONE, PipelineState.ABORTED})


class Pipeline:
    """
    Orchestrates a single transcription session.

    Components are built from the Config unless injected, which is how the
    tests swap in fakes for the recorder, the API and the desktop tools.

    Attributes:
        config: Settings for this invocation.
        max_duration: Recording limit in seconds.
        session: The RecordingSession of the last run, if any.
        janitor: The ResourceJanitor of the last run, if any.
        text: The delivered transcript after a successful run.
        delivery: How the transcript was delivered.
        recording: ExitOutcome of the recorder.

    Callbacks:
        on_state_changed: Called on every state transition.
            Signature: (old_state: PipelineState, new_state: PipelineState) -> None
    """

    def __init__(
        self,
        config: Config,
        long_form: bool = False,
        max_duration: Optional[float] = None,
        notifier: Optional[Notifier] = None,
        selector: Optional[AudioBackendSelector] = None,
        client: Optional[TranscriptionClient] = None,
        dispatcher: Optional[OutputDispatcher] = None,
        indicator: object = _UNSET,
        supervisor_factory: SupervisorFactory = ProcessSupervisor,
        token: Optional[CancellationToken] = None,
        temp_dir: Optional[Path] = None,
    ) -> None:
        self.config = config
        if max_duration is None:
            max_duration = config.long_max_duration if long_form else config.max_duration
        self.max_duration = max_duration

        self._notifier = notifier if notifier is not None else Notifier()
        self._selector = selector if selector is not None else AudioBackendSelector()
        self._client = client if client is not None else TranscriptionClient(
            model=config.model, language=config.language
        )
        self._dispatcher = dispatcher if dispatcher is not None else OutputDispatcher(
            notifier=self._notifier, auto_paste=config.auto_paste
        )
        self._indicator = indicator
        self._supervisor_factory = supervisor_factory
        self._token = token if token is not None else CancellationToken()
        self._temp_dir = temp_dir

        self._client.on_credential_warning = self._credential_warning

        self._state = PipelineState.IDLE
        self._state_lock = Lock()

        self.session: Optional[RecordingSession] = None
        self.janitor: Optional[ResourceJanitor] = None
        self.text: Optional[str] = None
        self.delivery: Optional[DeliveryOutcome] = None
        self.recording: Optional[ExitOutcome] = None

        self.on_state_changed: Optional[
            Callable[[PipelineState, PipelineState], None]
        ] = None

    @property
    def state(self) -> PipelineState:
        with self._state_lock:
            return self._state

    @property
    def token(self) -> CancellationToken:
        return self._token

    def _set_state(self, new_state: PipelineState) -> None:
        """
        Transition to a new pipeline state.

        Args:
            new_state: The new state to transition to.
        """
        with self._state_lock:
            old_state = self._state
            if old_state == new_state or old_state in TERMINAL_STATES:
                return

            self._state = new_state
            logger.info(f"State transition: {old_state.name} -> {new_state.name}")

        if self.on_state_changed:
            try:
                self.on_state_changed(old_state, new_state)
            except Exception as e:
                logger.error(f"Error in on_state_changed callback: {e}")

    def _credential_warning(self, message: str) -> None:
        self._notifier.notify("Warning", message, urgency="normal")

    def _select_indicator(self) -> Optional[IndicatorCapability]:
        if self._indicator is _UNSET:
            self._indicator = select_indicator() if self.config.indicator else None
        return self._indicator

    def run(self) -> int:
        """
        Run the session to completion.

        Returns:
            The process exit code (see ExitCode). Never raises for component
            failures or user interrupts.
        """
        session = RecordingSession()
        janitor = ResourceJanitor(session, notifier=self._notifier, temp_dir=self._temp_dir)
        self.session = session
        self.janitor = janitor

        logger.info(f"Starting session {session.session_id}")

        outcome = SessionOutcome.failed("Transcription failed. Check the terminal for details.")
        exit_code = ExitCode.UNEXPECTED

        with cancellation_scope(self._token, interruptible=False):
            try:
                # Interrupts are live only inside this block; a signal that
                # lands during unwinding still ends up in the handlers below
                try:
                    self._token.allow_interrupts()
                    self._execute(session, janitor)
                finally:
                    self._token.shield()
                outcome = SessionOutcome.success()
                exit_code = ExitCode.OK
                self._set_state(PipelineState.DONE)
            except KeyboardInterrupt:
                logger.info("Session cancelled by user")
                outcome = SessionOutcome.cancelled()
                exit_code = ExitCode.CANCELLED
                self._set_state(PipelineState.ABORTED)
            except ConduitError as e:
                logger.error(f"{type(e).__name__}: {e}")
                outcome = SessionOutcome.failed(str(e))
                exit_code = e.exit_code
                self._set_state(PipelineState.ABORTED)
            except Exception as e:
                logger.exception(f"Unexpected error: {e}")
                self._set_state(PipelineState.ABORTED)
            finally:
                janitor.release_all(outcome)

        logger.info(f"Session {session.session_id} finished with exit code {exit_code}")
        return exit_code

    def _execute(self, session: RecordingSession, janitor: ResourceJanitor) -> None:
        credential = self.config.credential
        self._client.check_credential(credential)

        capability = self._selector.select()
        session.capability = capability
        self._set_state(PipelineState.CAPABILITY_SELECTED)

        # Remember the target window while it still has focus
        session.focus_window = self._dispatcher.capture_focus()

        audio_file = janitor.acquire(ResourceKind.AUDIO_FILE)
        response_file = janitor.acquire(ResourceKind.RESPONSE_BUFFER)

        supervisor = self._supervisor_factory(session, janitor)
        indicator = self._select_indicator()

        self._token.raise_if_cancelled()
        self._set_state(PipelineState.RECORDING)
        # Children must be registered with the janitor before a signal can
        # unwind the stack
        with self._token.shielded():
            handle = supervisor.start(capability, audio_file, self.max_duration)
            if indicator is not None:
                supervisor.start_indicator(handle, indicator)
        self._token.raise_if_cancelled()
        hint = "Click the indicator to stop" if indicator is not None else "Press Ctrl+C to stop"
        self._notifier.notify(
            "Recording Started",
            f"{hint} (max {self.max_duration / 60:g} minutes)",
            urgency="low",
        )

        self.recording = supervisor.wait(handle, self._token)
        if self.recording.partial:
            self._notifier.notify(
                "Warning",
                f"Recording stopped after the {self.max_duration / 60:g} minute limit",
            )

        self._set_state(PipelineState.VALIDATING)
        validate_audio(audio_file)

        self._set_state(PipelineState.TRANSCRIBING)
        self._notifier.notify("Processing", "Transcribing audio...", urgency="low")
        result = self._client.transcribe(audio_file, credential, response_path=response_file)
        error = result_to_error(result)
        if error is not None:
            raise error
        text = cast(Success, result).text

        self._set_state(PipelineState.DISPATCHING)
        self.text = text
        self.delivery = self._dispatcher.deliver(text)

        if self.delivery is DeliveryOutcome.PASTED:
            preview = text[:PREVIEW_LENGTH]
            if len(text) > PREVIEW_LENGTH:
                preview += "..."
            self._notifier.notify("Success", f"Text transcribed and pasted: {preview}")
