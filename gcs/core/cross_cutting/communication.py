"""
Component 11: Communication Layer
Thread-safe MQTT bridge between the operator/vehicles and the sequencer.

Inbound topics (JSON payloads):
    <prefix>/operator/<action>            operator commands
    <prefix>/vehicles/<id>/telemetry      vehicle snapshots
    <prefix>/vehicles/<id>/complete       task completion reports
    <prefix>/vehicles/<id>/lwt            last will ({"status": "offline"})

Outbound topics:
    <prefix>/status                       sequencer status
    <prefix>/vehicles/<id>/task           dispatched tasks
    <prefix>/blocking                     blocking conditions

MQTT callbacks run in paho's network thread, never in the asyncio loop.
Decoded messages are posted into the MissionControlLoop, which applies them
on the loop thread one at a time.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Tuple

import paho.mqtt.client as mqtt

from ..g2_execution_core.control_loop import MissionControlLoop
from ..g2_execution_core.dispatch import DispatchedTask
from ..g2_execution_core.run_state import RunStateEnum
from ..g2_execution_core.sequencer import MissionSequencer

log = logging.getLogger(__name__)

# (action, args, kwargs) for the control loop
Command = Tuple[str, Tuple[Any, ...], Dict[str, Any]]


class MessageDecodeError(Exception):
    """Raised when an inbound topic or payload cannot be mapped to a command."""
    pass


def _require(payload: Dict[str, Any], *keys: str) -> Tuple[Any, ...]:
    missing = [k for k in keys if k not in payload]
    if missing:
        raise MessageDecodeError(f"Missing field(s) {missing}")
    return tuple(payload[k] for k in keys)


# Operator action name on the wire -> builder of (sequencer method, args)
OPERATOR_ACTIONS: Dict[str, Callable[[Dict[str, Any]], Tuple[str, Tuple[Any, ...]]]] = {
    "selectMissionType": lambda p: ("select_mission_type", _require(p, "missionType")),
    "setRange": lambda p: ("set_range", _require(p, "start", "end")),
    "setOption": lambda p: ("set_option", _require(p, "missionName", "option", "value")),
    "assignVehicle": lambda p: ("assign_vehicle", _require(p, "missionName", "vehicleId", "jobType")),
    "unassignVehicle": lambda p: ("unassign_vehicle", _require(p, "missionName", "vehicleId")),
    "setMissionInformation": lambda p: ("set_mission_information", (_require(p, "missionName")[0], p)),
    "setRequireConfirmation": lambda p: ("set_require_confirmation", _require(p, "value")),
    "start": lambda p: ("start", ()),
    "pause": lambda p: ("pause", ()),
    "resume": lambda p: ("resume", ()),
    "confirmNext": lambda p: ("confirm_next", ()),
    "stop": lambda p: ("stop", ()),
    "reset": lambda p: ("reset", ()),
}


def decode_message(topic: str, payload: Dict[str, Any], prefix: str = "gcs") -> Command:
    """
    Maps an inbound topic and JSON payload to a control loop command.

    Raises:
        MessageDecodeError: For unknown topics, actions, or missing fields.
    """
    parts = topic.split("/")
    if not parts or parts[0] != prefix:
        raise MessageDecodeError(f"Topic outside prefix '{prefix}': {topic}")
    if not isinstance(payload, dict):
        raise MessageDecodeError(f"Payload on {topic} is not an object")

    if len(parts) == 3 and parts[1] == "operator":
        action = parts[2]
        builder = OPERATOR_ACTIONS.get(action)
        if builder is None:
            raise MessageDecodeError(f"Unknown operator action '{action}'")
        method, args = builder(payload)
        return method, args, {}

    if len(parts) == 4 and parts[1] == "vehicles":
        try:
            vehicle_id = int(parts[2])
        except ValueError:
            raise MessageDecodeError(f"Invalid vehicle id in {topic}")
        kind = parts[3]

        if kind == "telemetry":
            return "update_vehicles", (dict(payload, vehicleId=vehicle_id),), {}
        if kind == "complete":
            (task_id,) = _require(payload, "taskId")
            success = payload.get("success", True)
            if not isinstance(success, bool):
                raise MessageDecodeError(f"\"success\" must be true or false, got {success!r}")
            result_parameters = payload.get("resultParameters") or {}
            if not isinstance(result_parameters, dict):
                raise MessageDecodeError(f"\"resultParameters\" must be an object on {topic}")
            return "report_task_complete", (vehicle_id, task_id), {
                "success": success,
                "result_parameters": result_parameters,
            }
        if kind == "lwt":
            if payload.get("status") != "offline":
                raise MessageDecodeError(f"Ignoring last will status {payload.get('status')!r}")
            return "mark_vehicle_disconnected", (vehicle_id,), {}

    raise MessageDecodeError(f"Unhandled topic: {topic}")


class MqttBridge:
    """
    Connects a MissionSequencer (through its control loop) to an MQTT broker.
    """

    def __init__(self,
                 control: MissionControlLoop,
                 client_id: str = "gcs_core",
                 host: str = "localhost",
                 port: int = 1883,
                 topic_prefix: str = "gcs",
                 username: Optional[str] = None,
                 password: Optional[str] = None,
                 keepalive: int = 60):
        self.control = control
        self.sequencer: MissionSequencer = control.sequencer
        self.client_id = client_id
        self.host = host
        self.port = port
        self.prefix = topic_prefix
        self.keepalive = keepalive
        self.connected = False

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        if username and password:
            self.client.username_pw_set(username, password)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_mqtt_msg

        self.sequencer.add_status_listener(self._publish_status)
        self.sequencer.add_dispatch_listener(self._publish_dispatch)
        self.sequencer.add_blocking_listener(self._publish_blocking)

        log.info(f"[MQTT-{client_id}] Initialized. Broker: {host}:{port}")

    # --- Paho callbacks (network thread) ---

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            log.error(f"[MQTT-{self.client_id}] Connection failed: {reason_code}")
            return
        self.connected = True
        for topic in (f"{self.prefix}/operator/+",
                      f"{self.prefix}/vehicles/+/telemetry",
                      f"{self.prefix}/vehicles/+/complete",
                      f"{self.prefix}/vehicles/+/lwt"):
            client.subscribe(topic)
        log.info(f"[MQTT-{self.client_id}] Connected to {self.host}:{self.port}")
        self._announce_status()

    def _announce_status(self):
        """Publishes the current status from the control loop thread, which owns the sequencer."""
        loop = self.control.loop
        if loop is None or not loop.is_running():
            log.debug(f"[MQTT-{self.client_id}] Control loop not running, status announced on next change")
            return
        loop.call_soon_threadsafe(lambda: self._publish_status(self.sequencer.state))

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self.connected = False
        log.warning(f"[MQTT-{self.client_id}] Disconnected from broker ({reason_code}). Reconnecting...")

    def _on_mqtt_msg(self, client, userdata, msg):
        try:
            payload = json.loads(msg.payload) if msg.payload else {}
            action, args, kwargs = decode_message(msg.topic, payload, self.prefix)
        except json.JSONDecodeError:
            log.warning(f"[MQTT-{self.client_id}] Invalid JSON on {msg.topic}")
            return
        except MessageDecodeError as e:
            log.warning(f"[MQTT-{self.client_id}] {e}")
            return

        try:
            self.control.post(action, *args, **kwargs)
        except RuntimeError:
            log.warning(f"[MQTT-{self.client_id}] Control loop not ready, dropping {msg.topic}")

    # --- Outbound ---

    def publish(self, topic: str, payload: Dict[str, Any]):
        """Synchronous publish (safe to call from any thread)."""
        if not self.connected:
            log.debug(f"[MQTT-{self.client_id}] Not connected, cannot publish to {topic}")
            return
        self.client.publish(topic, json.dumps(payload))

    def _publish_status(self, state: RunStateEnum):
        self.publish(f"{self.prefix}/status", self.sequencer.describe())

    def _publish_dispatch(self, vehicle_id: int, dispatched: DispatchedTask):
        self.publish(f"{self.prefix}/vehicles/{vehicle_id}/task", dispatched.to_dict())

    def _publish_blocking(self, reason: str):
        self.publish(f"{self.prefix}/blocking", {"reason": reason})

    # --- Lifecycle ---

    async def run(self):
        """
        Connects in paho's network thread and keeps it alive until cancelled.
        paho retries the broker until it answers.
        """
        self.client.connect_async(self.host, self.port, self.keepalive)
        self.client.loop_start()
        log.info(f"[MQTT-{self.client_id}] Network loop started")
        try:
            while True:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            log.info(f"[MQTT-{self.client_id}] Shutting down...")
            self.client.loop_stop()
            self.client.disconnect()
            raise
