from datetime import datetime
from uavguard import db
from uavguard.stages import stage_for_progress

STATUS_PROCESSING = 'processing'
STATUS_COMPLETED = 'completed'
STATUS_FAILED = 'failed'
ANALYSIS_STATUSES = (STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)

NODE_TRUSTED = 'trusted'
NODE_SUSPICIOUS = 'suspicious'
NODE_MALICIOUS = 'malicious'

SUMMARY_FIELDS = (
    'trust_score',
    'attacks_detected',
    'anomaly_score',
    'total_packets',
    'total_nodes',
    'analysis_duration',
)


def _isoformat(value):
    return value.isoformat() + 'Z' if value is not None else None


def classify_node(trust_score):
    """Derive a node status from its trust score."""
    if trust_score > 0.8:
        return NODE_TRUSTED
    if trust_score > 0.5:
        return NODE_SUSPICIOUS
    return NODE_MALICIOUS


class Analysis(db.Model):
    """Model for an uploaded capture file and its analysis results."""

    __tablename__ = 'analyses'

    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    upload_timestamp = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PROCESSING, index=True)
    progress = db.Column(db.Integer, nullable=False, default=0)

    # Summary results, populated only on completion
    trust_score = db.Column(db.Float)
    attacks_detected = db.Column(db.Integer)
    anomaly_score = db.Column(db.Float)
    total_packets = db.Column(db.Integer)
    total_nodes = db.Column(db.Integer)
    analysis_duration = db.Column(db.Integer)  # seconds
    completed_at = db.Column(db.DateTime)

    error_message = db.Column(db.Text)

    alerts = db.relationship(
        'Alert', backref='analysis', lazy=True,
        cascade='all, delete-orphan',
    )
    drone_nodes = db.relationship(
        'NodeState', backref='analysis', lazy=True,
        cascade='all, delete-orphan',
    )
    metrics = db.relationship(
        'MetricSample', backref='analysis', lazy=True,
        cascade='all, delete-orphan',
    )

    def __repr__(self):
        return f'<Analysis id={self.id} file={self.filename} status={self.status} progress={self.progress}>'

    @property
    def has_summary(self):
        return all(getattr(self, field) is not None for field in SUMMARY_FIELDS)

    def to_dict(self):
        """Convert model instance to dictionary."""
        return {
            'id': self.id,
            'filename': self.filename,
            'file_size': self.file_size,
            'upload_timestamp': _isoformat(self.upload_timestamp),
            'status': self.status,
            'progress': self.progress,
            'stage': stage_for_progress(self.progress).label,
            'trust_score': self.trust_score,
            'attacks_detected': self.attacks_detected,
            'anomaly_score': self.anomaly_score,
            'total_packets': self.total_packets,
            'total_nodes': self.total_nodes,
            'analysis_duration': self.analysis_duration,
            'completed_at': _isoformat(self.completed_at),
            'error_message': self.error_message,
        }


class Alert(db.Model):
    """Model for a security finding attached to a completed analysis."""

    __tablename__ = 'alerts'

    id = db.Column(db.Integer, primary_key=True)
    analysis_id = db.Column(
        db.Integer, db.ForeignKey('analyses.id', ondelete='CASCADE'), nullable=False, index=True
    )
    attack_type = db.Column(db.String(50), nullable=False)
    affected_node_id = db.Column(db.String(50), nullable=False)
    severity = db.Column(db.String(20), nullable=False)
    confidence = db.Column(db.Float, nullable=False)
    detection_method = db.Column(db.String(50), nullable=False)
    packet_timestamp = db.Column(db.DateTime)
    timestamp_detected = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    description = db.Column(db.Text)

    def __repr__(self):
        return f'<Alert id={self.id} type={self.attack_type} node={self.affected_node_id}>'

    def to_dict(self):
        """Convert model instance to dictionary."""
        return {
            'id': self.id,
            'analysis_id': self.analysis_id,
            'attack_type': self.attack_type,
            'affected_node_id': self.affected_node_id,
            'severity': self.severity,
            'confidence': self.confidence,
            'detection_method': self.detection_method,
            'packet_timestamp': _isoformat(self.packet_timestamp),
            'timestamp_detected': _isoformat(self.timestamp_detected),
            'description': self.description,
        }


class NodeState(db.Model):
    """Model for a per-drone trust and traffic snapshot."""

    __tablename__ = 'drone_nodes'
    __table_args__ = (
        db.UniqueConstraint('analysis_id', 'node_id', name='uq_drone_nodes_analysis_node'),
    )

    id = db.Column(db.Integer, primary_key=True)
    analysis_id = db.Column(
        db.Integer, db.ForeignKey('analyses.id', ondelete='CASCADE'), nullable=False, index=True
    )
    node_id = db.Column(db.String(50), nullable=False)
    trust_score = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(20), nullable=False)

    # Position in the swarm's local frame
    x_position = db.Column(db.Float)
    y_position = db.Column(db.Float)
    z_position = db.Column(db.Float)

    packets_sent = db.Column(db.Integer, default=0)
    packets_received = db.Column(db.Integer, default=0)
    packets_dropped = db.Column(db.Integer, default=0)
    last_seen = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<NodeState id={self.id} node={self.node_id} trust={self.trust_score}>'

    def to_dict(self):
        """Convert model instance to dictionary."""
        return {
            'id': self.id,
            'analysis_id': self.analysis_id,
            'node_id': self.node_id,
            'trust_score': self.trust_score,
            'status': self.status,
            'x_position': self.x_position,
            'y_position': self.y_position,
            'z_position': self.z_position,
            'packets_sent': self.packets_sent,
            'packets_received': self.packets_received,
            'packets_dropped': self.packets_dropped,
            'last_seen': _isoformat(self.last_seen),
        }


class MetricSample(db.Model):
    """Model for a network metrics time-series point."""

    __tablename__ = 'network_metrics'

    id = db.Column(db.Integer, primary_key=True)
    analysis_id = db.Column(
        db.Integer, db.ForeignKey('analyses.id', ondelete='CASCADE'), nullable=False, index=True
    )
    timestamp_recorded = db.Column(db.DateTime, default=datetime.utcnow)
    packet_rate = db.Column(db.Float)
    drop_ratio = db.Column(db.Float)
    average_delay = db.Column(db.Float)

    def __repr__(self):
        return f'<MetricSample id={self.id} analysis={self.analysis_id}>'

    def to_dict(self):
        """Convert model instance to dictionary."""
        return {
            'id': self.id,
            'analysis_id': self.analysis_id,
            'timestamp_recorded': _isoformat(self.timestamp_recorded),
            'packet_rate': self.packet_rate,
            'drop_ratio': self.drop_ratio,
            'average_delay': self.average_delay,
        }
