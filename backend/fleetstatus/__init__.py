"""FleetStatus - server inventory, backup freshness monitoring, and a public status page."""
__version__ = "1.0.0"
