import os

import motor.motor_asyncio
from dotenv import load_dotenv
from pymongo import ASCENDING

from coverfit.utils.logging_config import get_logger

logger = get_logger(__name__)

load_dotenv()

MONGO_DETAILS = os.getenv("MONGO_DETAILS", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "coverfit_db")
SAVED_STATE_MAX_AGE_DAYS = int(os.getenv("SAVED_STATE_MAX_AGE_DAYS", "30"))

logger.info(f"Initializing MongoDB client for database: {DB_NAME}")

# The client connects lazily, so importing this module never touches the network.
client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_DETAILS)
db = client[DB_NAME]

saved_states_coll = db["saved_states"]


async def init_indexes():
    """Index initialization for collections."""
    logger.info("Starting database index initialization")

    try:
        await saved_states_coll.create_index([("session_id", ASCENDING)], unique=True)
        logger.debug("Created unique index on saved_states.session_id")
    except Exception as e:
        if "already exists" in str(e).lower():
            logger.debug("Index on saved_states.session_id already exists")
        else:
            logger.warning(f"Could not create unique index on saved_states.session_id: {e}")

    try:
        # Mongo drops expired entries on its own; restore() still checks the age
        await saved_states_coll.create_index(
            [("last_saved", ASCENDING)],
            expireAfterSeconds=SAVED_STATE_MAX_AGE_DAYS * 24 * 3600,
        )
        logger.debug("Created TTL index on saved_states.last_saved")
    except Exception as e:
        logger.warning(f"Could not create TTL index on saved_states.last_saved: {e}")

    logger.info("Database index initialization completed")


def to_dict(doc):
    if not doc:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    return doc
