"""
OpenVVC Runtime - the main entry point.
Loads the config, builds the device layer, transport and phase scheduler,
and runs the Volt/VAR agent until interrupted or the scheduler faults.
"""

import argparse
import logging
import sys

from vvc.agent import VVCAgent
from vvc.config import ConfigError, VVCConfig, load_config
from vvc.devices import build_devices
from vvc.scheduler import ThreadedScheduler
from vvc.transport import UdpTransport

logger = logging.getLogger("OpenVVC")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="OpenVVC Volt/VAR agent")
    parser.add_argument(
        "--config",
        type=str,
        default="vvc.yaml",
        help="Path to YAML config file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    # 1. CONFIG
    try:
        raw = load_config(args.config)
        config = VVCConfig.from_dict(raw)
    except ConfigError as exc:
        logger.error(f"Cannot start: {exc}")
        return 2

    # 2. DEVICES, TRANSPORT, SCHEDULER
    devices = build_devices(raw)
    transport = UdpTransport(config.uuid, config.listen)
    scheduler = ThreadedScheduler.from_config(raw)

    # 3. AGENT
    agent = VVCAgent(config, scheduler, devices, transport)
    transport.subscribe(VVCAgent.MODULE, agent.handle_incoming)

    transport.start()
    scheduler.start()
    agent.run()

    exit_code = 0
    try:
        scheduler.join()
    except KeyboardInterrupt:
        logger.info("Interrupted -- shutting down")
    except Exception as exc:
        logger.critical(f"Scheduler fault, agent terminated: {exc!r}")
        exit_code = 1
    finally:
        scheduler.stop()
        transport.stop()
        devices.close()
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
