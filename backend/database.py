from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

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
        """Create MongoDB indexes for the export read paths."""
        try:
            await self.db.jobs.create_index("job_id", unique=True)
            await self.db.jobs.create_index([("owner_id", 1), ("created_at", -1)])

            # Material lines are always read per job and owner, oldest first
            await self.db.job_materials.create_index([("job_id", 1), ("owner_id", 1), ("created_at", 1)])

            await self.db.users.create_index("user_id", unique=True)

            await self.db.audit_logs.create_index([("resource_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index([("action", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index("timestamp")

            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            logger.warning(f"Index creation warning (may already exist): {e}")

database = Database()
