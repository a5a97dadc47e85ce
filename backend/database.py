from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

USERS_COLLECTION = os.environ.get('USERS_COLLECTION', 'users')


class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create account indexes: accessKey is the primary key, stripeCustomerId the secondary lookup."""
        try:
            users = self.db[USERS_COLLECTION]
            await users.create_index("accessKey", unique=True)
            # sparse: accounts that never checked out have no customer id
            await users.create_index("stripeCustomerId", sparse=True)
            await users.create_index("email", sparse=True)
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist with different options, log but don't fail
            logger.warning(f"Index creation note: {e}")


# Global database instance
database = Database()
