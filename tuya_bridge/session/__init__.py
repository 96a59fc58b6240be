"""Device connection lifecycle: heartbeat liveness and reconnect."""

from .connection_session import ConnectionSession, ReconnectBackoff, SessionTiming

__all__ = ['ConnectionSession', 'ReconnectBackoff', 'SessionTiming']
