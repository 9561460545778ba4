import logging
import threading
from datetime import datetime, timedelta

import numpy as np

from uavguard.models import classify_node

# Setup logger
logger = logging.getLogger(__name__)

ATTACK_TYPES = ('Blackhole', 'Wormhole', 'Sybil', 'Flooding', 'Jamming')
SEVERITIES = ('low', 'medium', 'high', 'critical')
DETECTION_METHODS = ('rule-based', 'ml-isolation-forest', 'ml-lstm')


def format_node_id(index):
    """Format a 1-based node index as a drone identifier, e.g. ``UAV_07``."""
    return f"UAV_{index:02d}"


def format_alert_description(attack_type, node_id, detection_method):
    return f"{attack_type} attack detected on node {node_id} via {detection_method}"


class DetectionResult:
    """Summary fields plus derived alert and node records for one analysis."""

    def __init__(self, summary, alerts, nodes):
        self.summary = summary
        self.alerts = alerts
        self.nodes = nodes

    def __repr__(self):
        return (
            f'<DetectionResult attacks={self.summary.get("attacks_detected")} '
            f'alerts={len(self.alerts)} nodes={len(self.nodes)}>'
        )


class DetectionPolicy:
    """
    Interface for producing analysis results.

    A real detector can replace the synthetic one by implementing
    :meth:`analyze`; the stage sequencer never depends on how results are made.
    """

    def analyze(self, analysis_id, now=None):
        """
        Produce the results for an analysis.

        Args:
            analysis_id: Identifier of the analysis being completed
            now: Reference time for generated timestamps (defaults to utcnow)

        Returns:
            DetectionResult whose ``summary`` holds the six summary fields and
            whose ``alerts``/``nodes`` hold column dictionaries for the records
        """
        raise NotImplementedError


class RandomDetectionPolicy(DetectionPolicy):
    """
    Placeholder detector that draws every result from a random generator.

    Pass a seed to get reproducible results.
    """

    def __init__(self, seed=None):
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        # Generator state is shared by concurrently running sequences
        self._lock = threading.Lock()

    def analyze(self, analysis_id, now=None):
        now = now or datetime.utcnow()
        with self._lock:
            summary = self._summarize()
            alerts = self._generate_alerts(summary['attacks_detected'], summary['total_nodes'], now)
            nodes = self._generate_nodes(summary['total_nodes'], now)

        logger.debug(
            f"Synthetic detection for analysis {analysis_id}: "
            f"{summary['attacks_detected']} attacks across {summary['total_nodes']} nodes"
        )
        return DetectionResult(summary, alerts, nodes)

    def _summarize(self):
        # Convert NumPy types to Python native types to avoid DB issues
        return {
            'trust_score': float(self.rng.uniform(0.65, 0.95)),
            'attacks_detected': int(self.rng.integers(0, 6)),
            'anomaly_score': float(self.rng.uniform(0.0, 0.5)),
            'total_packets': int(self.rng.integers(5000, 20000)),
            'total_nodes': int(self.rng.integers(8, 20)),
            'analysis_duration': int(self.rng.integers(25, 65)),
        }

    def _choice(self, options):
        return options[int(self.rng.integers(0, len(options)))]

    def _generate_alerts(self, count, total_nodes, now):
        alerts = []
        for _ in range(count):
            attack_type = self._choice(ATTACK_TYPES)
            detection_method = self._choice(DETECTION_METHODS)
            node_id = format_node_id(int(self.rng.integers(1, total_nodes + 1)))
            # Random time within the last hour
            detected = now - timedelta(seconds=float(self.rng.uniform(0, 3600)))
            alerts.append({
                'attack_type': attack_type,
                'affected_node_id': node_id,
                'severity': self._choice(SEVERITIES),
                'confidence': float(self.rng.uniform(0.6, 1.0)),
                'detection_method': detection_method,
                'packet_timestamp': detected,
                'timestamp_detected': detected,
                'description': format_alert_description(attack_type, node_id, detection_method),
            })
        return alerts

    def _generate_nodes(self, total_nodes, now):
        nodes = []
        for index in range(1, total_nodes + 1):
            trust_score = float(self.rng.uniform(0.6, 1.0))
            packets_sent = int(self.rng.integers(0, 2000))
            nodes.append({
                'node_id': format_node_id(index),
                'trust_score': trust_score,
                'status': classify_node(trust_score),
                'x_position': float(self.rng.uniform(0, 300)),
                'y_position': float(self.rng.uniform(0, 300)),
                'z_position': float(self.rng.uniform(30, 80)),  # altitude
                'packets_sent': packets_sent,
                'packets_received': int(np.floor(packets_sent * self.rng.uniform(0.8, 1.0))),
                'packets_dropped': int(np.floor(packets_sent * self.rng.uniform(0, 1) * 0.1)),
                'last_seen': now,
            })
        return nodes
