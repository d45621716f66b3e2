from .connection_manager import ConnectionManager, manager
from .event_relay import LedgerEventRelay

__all__ = ['ConnectionManager', 'manager', 'LedgerEventRelay']
