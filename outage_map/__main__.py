"""
Show a JSON file of outage records on the clustered outage map.

Usage
-----
    python -m outage_map outages.json --zoom 8 --log-level debug

The file holds either a list of records or an object with an ``outages``
list.  Records without an id or with unreadable fields are skipped with a
warning.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

from .config import MapSettings
from .geo.outage import Event
from .logsetup import setup_logging

log = logging.getLogger(__name__)


def load_events(path: Path) -> List[Event]:
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    records = data.get("outages", []) if isinstance(data, dict) else data
    if not isinstance(records, list):
        raise ValueError(f"{path}: expected a list of outage records")

    events: List[Event] = []
    for idx, record in enumerate(records):
        if not isinstance(record, dict):
            log.warning("Skipping record %d: not an object", idx)
            continue
        try:
            events.append(Event.from_dict(record))
        except (TypeError, ValueError) as exc:
            log.warning("Skipping record %d: %s", idx, exc)
    log.info("Loaded %d of %d outage records from %s", len(events), len(records), path)
    return events


def main() -> None:
    parser = argparse.ArgumentParser(description="Clustered outage map viewer")
    parser.add_argument("events", type=Path, help="JSON file of outage records.")
    parser.add_argument(
        "--zoom",
        type=int,
        default=None,
        help="Initial zoom level (defaults to the minimum zoom).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level: DEBUG, INFO, WARNING, ...",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Also write outage_map.log into this directory.",
    )
    args = parser.parse_args()

    setup_logging(args.log_level, args.log_dir)
    settings = MapSettings.from_env()
    events = load_events(args.events)

    from PyQt5 import QtWidgets
    from .gui.map_widget import OutageMapWidget

    app = QtWidgets.QApplication(sys.argv)
    app.setStyle("Fusion")

    widget = OutageMapWidget(settings=settings, zoom=args.zoom)
    widget.setWindowTitle(f"Outage map — {args.events.name}")
    widget.resize(1100, 760)
    widget.set_events(events)
    widget.show()
    sys.exit(app.exec_())


if __name__ == "__main__":
    main()
