"""
Outage map: multi-resolution clustering of power-outage events.

Entry point: python -m outage_map events.json

Provides:
- Outage event / group data model (geo.outage)
- Per-zoom cluster buckets with cross-zoom linkage and lazy geometry (geo.buckets)
- Split / merge transition planning between adjacent zooms (geo.transitions)
- PyQt5 render layers, transition animator and map widget (gui/)
"""

__version__ = "0.3.0"
