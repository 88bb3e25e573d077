"""MongoDB connection for the building management API.

The connection is opened lazily by pymongo; `get_database` returns None when
DATABASE_URL or DATABASE_NAME is not set so the app can still report its
status from the /test endpoint.
"""

import logging
from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)

APARTMENTS = "apartments"
AGREEMENTS = "agreements"
USERS = "users"
COUPONS = "coupons"
PAYMENTS = "payments"
ANNOUNCEMENTS = "announcements"


def get_database(settings: Settings) -> Optional[Database]:
    if not settings.database_url or not settings.database_name:
        logger.warning("DATABASE_URL or DATABASE_NAME not set, running without a database")
        return None
    client: MongoClient = MongoClient(settings.database_url)
    return client[settings.database_name]
