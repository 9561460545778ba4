import time

from uavguard.detection import RandomDetectionPolicy
from uavguard.models import STATUS_PROCESSING


class FixedAttackPolicy(RandomDetectionPolicy):
    """Random policy with a pinned number of detected attacks."""

    def __init__(self, attacks, seed=7):
        super().__init__(seed=seed)
        self.attacks = attacks

    def _summarize(self):
        summary = super()._summarize()
        summary['attacks_detected'] = self.attacks
        return summary


class FakeSocketIO:
    """Stand-in for SocketIO that records events and runs tasks on demand."""

    def __init__(self, run_tasks=True):
        self.run_tasks = run_tasks
        self.events = []
        self.pending = []
        self.sleeps = 0
        self.on_sleep = None

    def start_background_task(self, target, *args, **kwargs):
        if self.run_tasks:
            return target(*args, **kwargs)
        self.pending.append((target, args, kwargs))

    def run_pending(self):
        while self.pending:
            target, args, kwargs = self.pending.pop(0)
            target(*args, **kwargs)

    def sleep(self, seconds):
        self.sleeps += 1
        if self.on_sleep is not None:
            self.on_sleep(self.sleeps)

    def emit(self, event, data=None, **kwargs):
        self.events.append((event, data))

    def payloads(self, event):
        return [data for name, data in self.events if name == event]


def wait_for_analysis(client, analysis_id, timeout=15):
    """Poll the detail endpoint until the analysis leaves ``processing``."""
    deadline = time.monotonic() + timeout
    seen_progress = []
    while True:
        body = client.get(f'/api/analyses/{analysis_id}').get_json()
        seen_progress.append(body['analysis']['progress'])
        if body['analysis']['status'] != STATUS_PROCESSING or time.monotonic() > deadline:
            return body, seen_progress
        time.sleep(0.02)
