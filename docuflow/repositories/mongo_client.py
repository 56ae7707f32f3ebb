"""MongoDB Client - Connection and Collection Management"""
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

SUBMISSIONS_COLLECTION = "form_submissions"
AUDIT_EVENTS_COLLECTION = "audit_events"
NOTIFICATION_OUTBOX_COLLECTION = "notification_outbox"

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
            tz_aware=True,
        )
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            _client = None
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    return get_database()[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def create_indexes() -> None:
    """Create all required indexes"""
    db = get_database()
    logger.info("Creating MongoDB indexes...")

    # Form submissions collection
    submissions = db[SUBMISSIONS_COLLECTION]
    submissions.create_index("submission_id", unique=True)
    submissions.create_index([("department", ASCENDING), ("status", ASCENDING)])
    submissions.create_index([("submitted_by", ASCENDING), ("status", ASCENDING)])
    submissions.create_index("template_id")
    submissions.create_index("updated_at", background=True)
    submissions.create_index("created_at", background=True)
    submissions.create_index("submitted_at")

    # Notification outbox collection
    notification_outbox = db[NOTIFICATION_OUTBOX_COLLECTION]
    notification_outbox.create_index("notification_id", unique=True)
    notification_outbox.create_index([("status", ASCENDING), ("next_retry_at", ASCENDING)])
    notification_outbox.create_index("submission_id")
    notification_outbox.create_index("locked_until")

    # Audit events collection
    audit_events = db[AUDIT_EVENTS_COLLECTION]
    audit_events.create_index("audit_event_id", unique=True)
    audit_events.create_index([("resource_id", ASCENDING), ("timestamp", DESCENDING)])
    audit_events.create_index("timestamp", background=True)

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        client = get_client()
        client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
