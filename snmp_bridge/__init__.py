"""SNMP to RADIUS bridge for net-snmp pass_persist."""

__version__ = "1.0.0"
