#!/usr/bin/env python3
"""
drivenav - Turn-by-turn car navigation from the terminal

Usage:
    python -m drivenav [options]

Options:
    --lat LAT         Map center latitude (default: Berlin)
    --lon LON         Map center longitude
    --osrm-url URL    OSRM server for route calculation
    --speed FACTOR    Simulated navigation speed multiplier (default: 2.0)
    --log FILE        Log file path (default: drivenav_TIMESTAMP.log)
    --html FILE       Write a map preview of each proposed route to HTML file
    --debug-gui       Run with web-based control panel
    --seed N          Seed for random start/destination selection
"""

import argparse
from datetime import datetime

from .app import create_app


def main():
    parser = argparse.ArgumentParser(
        description="drivenav - Turn-by-turn car navigation from the terminal"
    )
    parser.add_argument("--lat", type=float, metavar="LAT",
                        help="Map center latitude")
    parser.add_argument("--lon", type=float, metavar="LON",
                        help="Map center longitude")
    parser.add_argument("--osrm-url", metavar="URL",
                        help="OSRM server base URL")
    parser.add_argument("--speed", type=float,
                        help="Simulated navigation speed multiplier (default: 2.0)")
    parser.add_argument("--log", metavar="FILE",
                        help="Log file path (default: drivenav_TIMESTAMP.log)")
    parser.add_argument("--html", metavar="FILE",
                        help="Write proposed route visualization to HTML file")
    parser.add_argument("--debug-gui", action="store_true",
                        help="Run with web-based control panel")
    parser.add_argument("--seed", type=int,
                        help="Seed for random waypoints")

    args = parser.parse_args()

    # Validate lat/lon - must provide both or neither
    if (args.lat is None) != (args.lon is None):
        parser.error("--lat and --lon must be used together")
    if args.speed is not None and args.speed <= 0:
        parser.error("--speed must be positive")

    # Determine log path
    log_path = args.log
    if not log_path:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = f"drivenav_{timestamp}.log"

    map_center = (args.lat, args.lon) if args.lat is not None else None
    app = create_app(
        log_path=log_path,
        map_center=map_center,
        osrm_url=args.osrm_url,
        speed_factor=args.speed,
        html_output=args.html,
        debug_gui=args.debug_gui,
        seed=args.seed,
    )
    app.run()


if __name__ == "__main__":
    main()
