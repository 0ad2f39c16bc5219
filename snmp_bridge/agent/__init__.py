"""pass_persist agent module translating SNMP operations to RADIUS requests."""

from .pass_persist import PassPersistSession, BridgeSchema, SessionState

__all__ = ["PassPersistSession", "BridgeSchema", "SessionState"]
