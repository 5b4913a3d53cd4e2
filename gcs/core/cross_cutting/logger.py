"""
Structured Mission Logger

Writes JSON Lines format for post-run analysis.
Each line is one complete JSON object: {"t", "id", "event", "data"}.
"""
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

log = logging.getLogger(__name__)

STATUS = "STATUS"
DISPATCH = "DISPATCH"
BLOCKED = "BLOCKED"
COMPLETE = "COMPLETE"


class MissionLogger:
    """
    Minimal structured logger for sequencer events.

    attach() subscribes it to a MissionSequencer so status changes,
    dispatches, completions and blocking conditions are recorded.
    """

    def __init__(self, station_id: str, log_file: Union[str, Path] = "logs/mission.jsonl"):
        self.station_id = station_id
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        self.file = open(self.log_file, 'a', buffering=1)  # Line buffered
        log.info(f"[Logger] Logging to {self.log_file}")

    def log(self, event: str, data: Optional[Dict[str, Any]] = None):
        """
        Log structured event.

        Args:
            event: Event type (e.g. "STATUS", "DISPATCH", "BLOCKED")
            data: Event payload, JSON serialisable
        """
        entry = {
            't': time.time(),
            'id': self.station_id,
            'event': event,
            'data': data or {},
        }

        try:
            self.file.write(json.dumps(entry) + '\n')
            self.file.flush()
        except (OSError, TypeError, ValueError) as e:
            log.error(f"[Logger] Failed to write {event}: {e}")

    def attach(self, sequencer) -> "MissionLogger":
        """Records a MissionSequencer's events as they happen."""
        sequencer.add_status_listener(lambda state: self.log(STATUS, sequencer.describe()))
        sequencer.add_dispatch_listener(lambda vehicle_id, task: self.log(DISPATCH, task.to_dict()))
        sequencer.add_blocking_listener(lambda reason: self.log(BLOCKED, {"reason": reason}))
        sequencer.add_completion_listener(lambda result: self.log(COMPLETE, {
            "taskId": result.task_id,
            "vehicleId": result.vehicle_id,
            "taskType": result.task.task_type,
            "success": result.success,
            "parameters": result.parameters,
        }))
        return self

    def close(self):
        if self.file and not self.file.closed:
            self.file.close()
            log.info(f"[Logger] Closed {self.log_file}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def read_log(log_file: Union[str, Path]) -> List[Dict[str, Any]]:
    events = []
    with open(log_file, 'r') as f:
        for line in f:
            if line.strip():
                events.append(json.loads(line))
    return events


def analyze_log(log_file: Union[str, Path]) -> Dict[str, Any]:
    """
    Summarises a mission log for post-run review.

    Returns:
        {"events": {type: count}, "duration": seconds,
         "statuses": [status, ...], "dispatches": {vehicleId: count},
         "failures": [taskId, ...], "blocked": [reason, ...]}
    """
    events = read_log(log_file)

    event_types: Dict[str, int] = {}
    for e in events:
        event_types[e['event']] = event_types.get(e['event'], 0) + 1

    duration = events[-1]['t'] - events[0]['t'] if events else 0.0

    statuses = [e['data'].get('status') for e in events if e['event'] == STATUS]

    dispatches: Dict[int, int] = {}
    for e in events:
        if e['event'] == DISPATCH:
            vehicle_id = e['data'].get('vehicleId')
            dispatches[vehicle_id] = dispatches.get(vehicle_id, 0) + 1

    failures = [e['data'].get('taskId') for e in events
                if e['event'] == COMPLETE and not e['data'].get('success', True)]
    blocked = [e['data'].get('reason') for e in events if e['event'] == BLOCKED]

    log.info(
        f"[Logger] {log_file}: {len(events)} events over {duration:.1f}s, "
        f"{sum(dispatches.values())} dispatches, {len(blocked)} blocking conditions"
    )
    return {
        "events": event_types,
        "duration": duration,
        "statuses": statuses,
        "dispatches": dispatches,
        "failures": failures,
        "blocked": blocked,
    }
