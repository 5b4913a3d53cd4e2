"""
Ground station mission core entry point.

    python -m gcs.main --config config/gcs_config.yaml \
        [--state state/sequencer.json] [--mission-info missions.json] [--validate]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from gcs.core.cross_cutting.communication import MqttBridge
from gcs.core.cross_cutting.config import ConfigError, GcsConfig, load_config
from gcs.core.cross_cutting.logger import MissionLogger
from gcs.core.cross_cutting.persistence import SnapshotError, load_snapshot, save_snapshot
from gcs.core.g1_mission_definition.information import MISSION_TITLES
from gcs.core.g1_mission_definition.loader import MissionLoadError, load_mission_information
from gcs.core.g1_mission_definition.parser import MissionParseError
from gcs.core.g2_execution_core.control_loop import MissionControlLoop
from gcs.core.g2_execution_core.sequencer import MissionSequencer
from gcs.core.g3_missions import create_mission

log = logging.getLogger("gcs.main")


def build_sequencer(config: GcsConfig,
                    state_path: Optional[str] = None,
                    mission_info_path: Optional[str] = None) -> MissionSequencer:
    """Creates the sequencer and applies any saved state and mission information."""
    sequencer = MissionSequencer(
        mission_type=config.sequencer.mission_type,
        require_confirmation=config.sequencer.require_confirmation,
    )
    if state_path and Path(state_path).exists():
        sequencer.restore(load_snapshot(state_path))
    if mission_info_path:
        for mission_name, information in load_mission_information(mission_info_path).items():
            sequencer.set_mission_information(mission_name, information)
    return sequencer


def validate_sequence(sequencer: MissionSequencer) -> List[str]:
    """
    Checks the information of every mission in range.
    Vehicles are not considered; none have reported yet.
    """
    problems = []
    for mission_name in sequencer.mission_sequence:
        mission = create_mission(
            mission_name,
            sequencer.roster,
            sequencer.information.get(mission_name),
            sequencer.assignments[mission_name],
            sequencer.options.for_mission(mission_name),
        )
        try:
            mission.validate()
        except MissionParseError as e:
            problems.append(str(e))
        for job_type in mission.missing_job_types():
            problems.append(f"{MISSION_TITLES[mission_name]}: no vehicle assigned to job type '{job_type}'")
    return problems


async def serve(config: GcsConfig, sequencer: MissionSequencer):
    control = MissionControlLoop(sequencer)
    tasks = [asyncio.create_task(control.run())]
    if config.mqtt.enabled:
        bridge = MqttBridge(
            control,
            client_id=config.mqtt.client_id,
            host=config.mqtt.host,
            port=config.mqtt.port,
            topic_prefix=config.mqtt.topic_prefix,
            username=config.mqtt.username,
            password=config.mqtt.password,
            keepalive=config.mqtt.keepalive,
        )
        tasks.append(asyncio.create_task(bridge.run()))
    else:
        log.warning("[Main] MQTT disabled; the control loop only accepts local submissions")

    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Ground station mission core: sequences multi-vehicle missions"
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/gcs_config.yaml",
        help="Path to the ground station configuration YAML file"
    )
    parser.add_argument(
        "--state",
        type=str,
        default=None,
        help="Sequencer snapshot (JSON) restored on start and saved on exit"
    )
    parser.add_argument(
        "--mission-info",
        type=str,
        default=None,
        help="Mission information payloads (JSON) to preload"
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Check the configured mission range and exit"
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO)
        log.error(f"[Main] {e}")
        return 1

    logging.basicConfig(
        level=getattr(logging, config.logging.level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        sequencer = build_sequencer(config, args.state, args.mission_info)
    except (SnapshotError, MissionLoadError, ValueError, KeyError) as e:
        log.error(f"[Main] {e}")
        return 1

    if args.validate:
        problems = validate_sequence(sequencer)
        for problem in problems:
            log.error(f"[Main] {problem}")
        if problems:
            log.error("[Main] Validation failed")
            return 1
        log.info(f"[Main] Validation passed for {sequencer.mission_sequence}")
        return 0

    mission_logger = None
    if config.logging.mission_log:
        mission_logger = MissionLogger(config.mqtt.client_id, config.logging.mission_log).attach(sequencer)

    try:
        asyncio.run(serve(config, sequencer))
    except KeyboardInterrupt:
        log.info("[Main] Cancelled by user")
    finally:
        if args.state:
            save_snapshot(sequencer.snapshot(), args.state)
        if mission_logger is not None:
            mission_logger.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
