import logging
from datetime import datetime, timedelta

from sqlalchemy import desc, func
from sqlalchemy.exc import SQLAlchemyError

from uavguard.errors import NotFoundError, PersistenceError, ValidationError
from uavguard.models import (
    ANALYSIS_STATUSES,
    Alert,
    Analysis,
    MetricSample,
    NodeState,
    STATUS_COMPLETED,
)

# Setup logger
logger = logging.getLogger(__name__)

RECENT_THREAT_LIMIT = 5


def network_health_label(score):
    """Map an average trust score to a network health label."""
    score = score or 0
    if score > 0.8:
        return 'Excellent'
    if score > 0.6:
        return 'Good'
    if score > 0.4:
        return 'Fair'
    return 'Poor'


def list_analyses(session, limit, status=None):
    """
    Return up to ``limit`` analyses, newest upload first.

    Args:
        session: SQLAlchemy session
        limit: Maximum number of rows
        status: Optional lifecycle status filter

    Raises:
        ValidationError: for an unknown status filter
        PersistenceError: if the store cannot be queried
    """
    if status and status not in ANALYSIS_STATUSES:
        raise ValidationError(
            f"Unknown status '{status}'; expected one of {', '.join(ANALYSIS_STATUSES)}"
        )
    try:
        query = session.query(Analysis)
        if status:
            query = query.filter(Analysis.status == status)
        analyses = query.order_by(
            Analysis.upload_timestamp.desc(), Analysis.id.desc()
        ).limit(limit).all()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Failed to fetch analyses: {str(e)}") from e
    return [analysis.to_dict() for analysis in analyses]


def get_analysis_detail(session, analysis_id):
    """
    Return an analysis with its alerts, drone nodes and metrics.

    Raises:
        NotFoundError: if no analysis has this id
        PersistenceError: if the store cannot be queried
    """
    try:
        analysis = session.get(Analysis, analysis_id)
        if analysis is None:
            raise NotFoundError(f"Analysis {analysis_id} not found")

        alerts = session.query(Alert).filter(
            Alert.analysis_id == analysis_id
        ).order_by(Alert.timestamp_detected.desc()).all()

        nodes = session.query(NodeState).filter(
            NodeState.analysis_id == analysis_id
        ).order_by(NodeState.trust_score.desc()).all()

        metrics = session.query(MetricSample).filter(
            MetricSample.analysis_id == analysis_id
        ).order_by(MetricSample.timestamp_recorded.asc()).all()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Failed to fetch analysis details: {str(e)}") from e

    return {
        'analysis': analysis.to_dict(),
        'alerts': [alert.to_dict() for alert in alerts],
        'droneNodes': [node.to_dict() for node in nodes],
        'metrics': [metric.to_dict() for metric in metrics],
    }


def get_dashboard_stats(session, now=None):
    """
    Aggregate the statistics shown on the dashboard.

    Returns:
        Dictionary with ``stats``, ``recentThreats`` and ``threatDistribution``
    """
    now = now or datetime.utcnow()
    try:
        total_analyses = session.query(func.count(Analysis.id)).scalar()

        # Active threats are alerts from the last 24 hours
        active_threats = session.query(func.count(Alert.id)).filter(
            Alert.timestamp_detected > now - timedelta(hours=24)
        ).scalar()

        average_trust = session.query(func.avg(Analysis.trust_score)).filter(
            Analysis.status == STATUS_COMPLETED,
            Analysis.trust_score.isnot(None),
        ).scalar()

        # Network health is based on the last week of completed analyses
        health_score = session.query(func.avg(Analysis.trust_score)).filter(
            Analysis.status == STATUS_COMPLETED,
            Analysis.completed_at > now - timedelta(days=7),
            Analysis.trust_score.isnot(None),
        ).scalar()

        recent_threats = session.query(
            Alert.attack_type,
            Alert.affected_node_id,
            Alert.severity,
            Alert.timestamp_detected,
            Analysis.filename,
        ).join(
            Analysis, Alert.analysis_id == Analysis.id
        ).order_by(
            Alert.timestamp_detected.desc()
        ).limit(RECENT_THREAT_LIMIT).all()

        count = func.count(Alert.id).label('count')
        distribution = session.query(Alert.attack_type, count).filter(
            Alert.timestamp_detected > now - timedelta(days=30)
        ).group_by(Alert.attack_type).order_by(desc(count), Alert.attack_type).all()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Failed to fetch dashboard statistics: {str(e)}") from e

    health_score = float(health_score or 0)
    return {
        'stats': {
            'totalAnalyses': int(total_analyses or 0),
            'activeThreats': int(active_threats or 0),
            'averageTrustScore': float(average_trust or 0),
            'networkHealth': network_health_label(health_score),
            'healthScore': health_score,
        },
        'recentThreats': [
            {
                'attack_type': row.attack_type,
                'affected_node_id': row.affected_node_id,
                'severity': row.severity,
                'timestamp_detected': row.timestamp_detected.isoformat() + 'Z',
                'filename': row.filename,
            }
            for row in recent_threats
        ],
        'threatDistribution': [
            {'attack_type': attack_type, 'count': int(total)}
            for attack_type, total in distribution
        ],
    }
