from datetime import datetime, timedelta

import pytest

from uavguard.detection import (
    ATTACK_TYPES,
    DETECTION_METHODS,
    SEVERITIES,
    DetectionPolicy,
    RandomDetectionPolicy,
    format_node_id,
)
from uavguard.models import SUMMARY_FIELDS, classify_node

NOW = datetime(2026, 10, 19, 12, 0, 0)


@pytest.mark.parametrize('seed', [0, 1, 42, 2024])
def test_summary_ranges(seed):
    result = RandomDetectionPolicy(seed=seed).analyze(1, now=NOW)
    summary = result.summary

    assert set(summary) == set(SUMMARY_FIELDS)
    assert 0.65 <= summary['trust_score'] <= 0.95
    assert 0 <= summary['attacks_detected'] <= 5
    assert 0.0 <= summary['anomaly_score'] <= 0.5
    assert 5000 <= summary['total_packets'] < 20000
    assert 8 <= summary['total_nodes'] < 20
    assert 25 <= summary['analysis_duration'] < 65
    # Native Python types, not numpy scalars
    assert type(summary['trust_score']) is float
    assert type(summary['attacks_detected']) is int


@pytest.mark.parametrize('seed', [3, 11, 99])
def test_alert_count_matches_attacks(seed):
    result = RandomDetectionPolicy(seed=seed).analyze(1, now=NOW)
    assert len(result.alerts) == result.summary['attacks_detected']

    valid_nodes = {format_node_id(i) for i in range(1, result.summary['total_nodes'] + 1)}
    for alert in result.alerts:
        assert alert['attack_type'] in ATTACK_TYPES
        assert alert['severity'] in SEVERITIES
        assert alert['detection_method'] in DETECTION_METHODS
        assert alert['affected_node_id'] in valid_nodes
        assert 0.6 <= alert['confidence'] <= 1.0
        assert NOW - timedelta(hours=1) <= alert['timestamp_detected'] <= NOW
        assert alert['description'] == (
            f"{alert['attack_type']} attack detected on node "
            f"{alert['affected_node_id']} via {alert['detection_method']}"
        )


def test_nodes_cover_every_index():
    result = RandomDetectionPolicy(seed=5).analyze(1, now=NOW)
    total = result.summary['total_nodes']

    node_ids = [node['node_id'] for node in result.nodes]
    assert node_ids == [format_node_id(i) for i in range(1, total + 1)]

    for node in result.nodes:
        assert 0.6 <= node['trust_score'] <= 1.0
        assert node['status'] == classify_node(node['trust_score'])
        assert 0 <= node['x_position'] < 300
        assert 0 <= node['y_position'] < 300
        assert 30 <= node['z_position'] < 80
        assert 0 <= node['packets_sent'] < 2000
        assert node['packets_received'] <= node['packets_sent']
        assert node['packets_dropped'] <= node['packets_sent']
        assert node['last_seen'] == NOW


def test_seed_makes_results_reproducible():
    first = RandomDetectionPolicy(seed=8).analyze(1, now=NOW)
    second = RandomDetectionPolicy(seed=8).analyze(1, now=NOW)
    assert first.summary == second.summary
    assert first.alerts == second.alerts


def test_base_policy_is_abstract():
    with pytest.raises(NotImplementedError):
        DetectionPolicy().analyze(1)


@pytest.mark.parametrize('trust, expected', [
    (0.95, 'trusted'),
    (0.81, 'trusted'),
    (0.8, 'suspicious'),
    (0.51, 'suspicious'),
    (0.5, 'malicious'),
    (0.1, 'malicious'),
])
def test_classify_node(trust, expected):
    assert classify_node(trust) == expected


def test_format_node_id():
    assert format_node_id(1) == 'UAV_01'
    assert format_node_id(19) == 'UAV_19'
