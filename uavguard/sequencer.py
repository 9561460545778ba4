import logging
import threading
import time
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from uavguard.errors import NotFoundError, PersistenceError, SequenceAlreadyRunning
from uavguard.models import Analysis, STATUS_COMPLETED, STATUS_FAILED, STATUS_PROCESSING
from uavguard.stages import STAGES, stage_for_progress, validate_stages

# Setup logger
logger = logging.getLogger(__name__)

OUTCOME_COMPLETED = 'completed'
OUTCOME_FAILED = 'failed'
OUTCOME_CANCELLED = 'cancelled'


class SequenceTimeout(Exception):
    """The sequence ran longer than the configured timeout."""


class SequenceAborted(Exception):
    """The analysis left the processing state while its sequence was running."""


class SequenceHandle:
    """Tracks one running stage sequence; the caller never has to wait on it."""

    def __init__(self, analysis_id):
        self.analysis_id = analysis_id
        self.outcome = None
        self._cancel = threading.Event()
        self._done = threading.Event()

    def __repr__(self):
        return f'<SequenceHandle analysis={self.analysis_id} outcome={self.outcome}>'

    def cancel(self):
        """Stop the sequence at the next stage boundary."""
        self._cancel.set()

    @property
    def cancelled(self):
        return self._cancel.is_set()

    @property
    def done(self):
        return self._done.is_set()

    def wait(self, timeout=None):
        """Block until the sequence finishes; returns False on timeout."""
        return self._done.wait(timeout)

    def _finish(self, outcome):
        self.outcome = outcome
        self._done.set()


class StageSequencer:
    """
    Advances analyses through the fixed pipeline stages in the background.

    Each sequence runs as a Socket.IO background task inside its own
    application context, so it gets its own database session and only
    touches the row of its own analysis.
    """

    def __init__(self, app, store, synthesizer, socketio, stages=STAGES, delay=2.0, timeout=None):
        """
        Args:
            app: The Flask application whose context sequences run in
            store: The Flask-SQLAlchemy extension
            synthesizer: ResultSynthesizer invoked at the terminal stage
            socketio: SocketIO instance used for background tasks and events
            stages: Ordered stages ending at 100% progress
            delay: Seconds to wait before each stage (must be positive)
            timeout: Maximum total sequence duration in seconds, or None
        """
        if delay is None or delay <= 0:
            raise ValueError(f"Stage delay must be positive, got {delay!r}")
        if timeout is not None and timeout <= 0:
            raise ValueError(f"Sequence timeout must be positive, got {timeout!r}")

        self.app = app
        self.store = store
        self.synthesizer = synthesizer
        self.socketio = socketio
        self.stages = validate_stages(stages)
        self.delay = delay
        self.timeout = timeout

        self._active = {}
        self._lock = threading.Lock()

    def is_running(self, analysis_id):
        with self._lock:
            return analysis_id in self._active

    def start(self, analysis_id):
        """
        Start advancing an analysis without blocking the caller.

        Returns:
            SequenceHandle for the new sequence

        Raises:
            SequenceAlreadyRunning: if a sequence is active for this analysis
        """
        handle = self._register(analysis_id)
        try:
            self.socketio.start_background_task(self.run, handle)
        except Exception:
            self._release(handle)
            raise
        logger.info(f"Started analysis sequence for analysis {analysis_id}")
        return handle

    def run(self, handle):
        """Run a registered sequence to the end in the calling thread."""
        outcome = OUTCOME_FAILED
        try:
            with self.app.app_context():
                try:
                    outcome = self._advance(handle)
                except SequenceTimeout:
                    logger.error(f"Analysis {handle.analysis_id} exceeded {self.timeout}s; marking failed")
                    self._mark_failed(handle.analysis_id, "Analysis timed out")
                except NotFoundError as e:
                    logger.error(f"Analysis sequence aborted: {e.message}")
                except SequenceAborted as e:
                    logger.warning(f"Analysis sequence aborted: {str(e)}")
                except Exception as e:
                    logger.exception(f"Analysis {handle.analysis_id} failed")
                    self._mark_failed(handle.analysis_id, str(e))
                finally:
                    self.store.session.remove()
        finally:
            self._release(handle)
            handle._finish(outcome)
        return outcome

    def shutdown(self, timeout=None):
        """Cancel every active sequence and wait for them to stop."""
        with self._lock:
            handles = list(self._active.values())
        for handle in handles:
            handle.cancel()
        deadline = None if timeout is None else time.monotonic() + timeout
        for handle in handles:
            remaining = None if deadline is None else max(0, deadline - time.monotonic())
            handle.wait(remaining)
        return all(handle.done for handle in handles)

    def _register(self, analysis_id):
        with self._lock:
            if analysis_id in self._active:
                raise SequenceAlreadyRunning(f"Analysis {analysis_id} is already being processed")
            handle = SequenceHandle(analysis_id)
            self._active[analysis_id] = handle
            return handle

    def _release(self, handle):
        with self._lock:
            if self._active.get(handle.analysis_id) is handle:
                del self._active[handle.analysis_id]

    def _advance(self, handle):
        started = time.monotonic()
        for stage in self.stages:
            self.socketio.sleep(self.delay)

            if handle.cancelled:
                logger.info(f"Analysis {handle.analysis_id} cancelled before reaching {stage.progress}%")
                self._mark_failed(handle.analysis_id, "Analysis cancelled")
                return OUTCOME_CANCELLED
            if self.timeout is not None and time.monotonic() - started > self.timeout:
                raise SequenceTimeout()

            if stage.progress >= 100:
                analysis = self.synthesizer.complete(handle.analysis_id)
                if analysis.status != STATUS_COMPLETED:
                    raise SequenceAborted(f"Analysis {handle.analysis_id} is {analysis.status}")
                self._emit_completion(analysis)
                return OUTCOME_COMPLETED

            analysis = self._apply_progress(handle.analysis_id, stage.progress)
            self._emit_progress(analysis, stage)
        return OUTCOME_COMPLETED

    def _apply_progress(self, analysis_id, progress):
        session = self.store.session
        try:
            analysis = session.get(Analysis, analysis_id)
            if analysis is None:
                raise NotFoundError(f"Analysis {analysis_id} not found")
            if analysis.status != STATUS_PROCESSING:
                raise SequenceAborted(f"Analysis {analysis_id} is {analysis.status}")
            # Progress never moves backwards
            analysis.progress = max(analysis.progress or 0, progress)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to update progress for analysis {analysis_id}: {str(e)}") from e
        logger.debug(f"Analysis {analysis_id} progress {analysis.progress}%")
        return analysis

    def _mark_failed(self, analysis_id, reason):
        session = self.store.session
        try:
            session.rollback()
            analysis = session.get(Analysis, analysis_id)
            if analysis is None or analysis.status != STATUS_PROCESSING:
                return
            analysis.status = STATUS_FAILED
            analysis.error_message = reason
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Could not mark analysis {analysis_id} as failed: {str(e)}")
            return
        self.socketio.emit('analysis_progress', self._progress_payload(analysis))

    def _progress_payload(self, analysis, stage=None):
        payload = {
            'id': analysis.id,
            'progress': analysis.progress,
            'status': analysis.status,
            'stage': (stage or stage_for_progress(analysis.progress, self.stages)).label,
        }
        if analysis.error_message:
            payload['error'] = analysis.error_message
        return payload

    def _emit_progress(self, analysis, stage):
        self.socketio.emit('analysis_progress', self._progress_payload(analysis, stage))

    def _emit_completion(self, analysis):
        self.socketio.emit('analysis_progress', self._progress_payload(analysis, self.stages[-1]))
        self.socketio.emit('analysis_completed', analysis.to_dict())
        for alert in analysis.alerts:
            self.socketio.emit('uav_alert', alert.to_dict())


def reconcile_stale_analyses(store, max_age, now=None):
    """
    Mark analyses left in ``processing`` by a previous process as failed.

    Args:
        store: The Flask-SQLAlchemy extension
        max_age: Seconds since upload after which a processing analysis is stale
        now: Reference time (defaults to utcnow)

    Returns:
        Number of analyses marked failed
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(seconds=max_age)
    session = store.session
    try:
        stale = Analysis.query.filter(
            Analysis.status == STATUS_PROCESSING,
            Analysis.upload_timestamp < cutoff,
        ).all()
        for analysis in stale:
            analysis.status = STATUS_FAILED
            analysis.error_message = "Analysis interrupted before completion"
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Failed to reconcile stale analyses: {str(e)}") from e

    if stale:
        logger.warning(f"Marked {len(stale)} interrupted analyses as failed")
    return len(stale)
