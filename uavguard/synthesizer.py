import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from uavguard.errors import NotFoundError, PersistenceError
from uavguard.models import Alert, Analysis, NodeState, STATUS_COMPLETED, STATUS_PROCESSING
from uavguard.utils import log_analysis_result

# Setup logger
logger = logging.getLogger(__name__)


class ResultSynthesizer:
    """
    Completes an analysis: writes its summary fields and derived records.

    The summary, the status change and every Alert/NodeState row are
    committed together, so a failed write never leaves a ``completed``
    analysis without results.
    """

    def __init__(self, store, policy, log_dir=None):
        """
        Args:
            store: The Flask-SQLAlchemy extension (provides ``session``)
            policy: A DetectionPolicy producing the results
            log_dir: Where to append the CSV result log (None disables it)
        """
        self.store = store
        self.policy = policy
        self.log_dir = log_dir

    def complete(self, analysis_id, now=None):
        """
        Finalize an analysis.

        Returns:
            The completed Analysis row

        Raises:
            NotFoundError: if the analysis no longer exists
            PersistenceError: if the results could not be written
        """
        session = self.store.session
        now = now or datetime.utcnow()

        try:
            analysis = session.get(Analysis, analysis_id)
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to load analysis {analysis_id}: {str(e)}") from e

        if analysis is None:
            raise NotFoundError(f"Analysis {analysis_id} not found")

        # Completed and failed are final states
        if analysis.status != STATUS_PROCESSING:
            logger.warning(f"Analysis {analysis_id} is {analysis.status}; skipping synthesis")
            return analysis

        result = self.policy.analyze(analysis_id, now=now)

        try:
            for field, value in result.summary.items():
                setattr(analysis, field, value)
            analysis.progress = 100
            analysis.status = STATUS_COMPLETED
            analysis.completed_at = now
            analysis.error_message = None

            session.add_all(Alert(analysis_id=analysis_id, **fields) for fields in result.alerts)
            session.add_all(NodeState(analysis_id=analysis_id, **fields) for fields in result.nodes)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to store results for analysis {analysis_id}: {str(e)}") from e

        logger.info(
            f"Analysis {analysis_id} ({analysis.filename}) completed: "
            f"trust={analysis.trust_score:.2f} attacks={analysis.attacks_detected}"
        )
        # Log to alerts.log
        for alert in result.alerts:
            logger.warning(
                f"ATTACK DETECTED: {alert['attack_type']} on {alert['affected_node_id']} "
                f"- Severity: {alert['severity']} - Confidence: {alert['confidence']:.2f} "
                f"(analysis {analysis_id})"
            )

        if self.log_dir:
            log_analysis_result(analysis, self.log_dir)

        return analysis
