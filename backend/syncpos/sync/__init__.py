from .remote import RemoteGateway, RemoteError
from .registry import ENTITY_ORDER, SkipRecord, get_entity_spec
from .engine import SyncEngine, SyncResult

__all__ = [
    'RemoteGateway', 'RemoteError',
    'ENTITY_ORDER', 'SkipRecord', 'get_entity_spec',
    'SyncEngine', 'SyncResult',
]
