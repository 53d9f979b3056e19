import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from eventledger.core.config import get_settings
from eventledger.db.documents import (
    ActiveCodeDocument,
    AuditLogDocument,
    EventDocument,
    FailedJobDocument,
    PointLedgerDocument,
    UserDocument,
)

DOCUMENT_MODELS = [
    EventDocument,
    ActiveCodeDocument,
    UserDocument,
    PointLedgerDocument,
    AuditLogDocument,
    FailedJobDocument,
]

_client: AsyncIOMotorClient | None = None


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def get_client() -> AsyncIOMotorClient:
    if _client is None:
        raise RuntimeError("init_db() has not been called")
    return _client


async def init_db() -> AsyncIOMotorClient:
    """Connect Motor and register documents. Transactions need a replica set (Atlas or rs0 locally)."""
    global _client
    if _client is not None:
        return _client
    settings = get_settings()
    # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
    kwargs = {"tz_aware": True}
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    _client = client
    return client
