import os
import logging
from zoneinfo import ZoneInfo
from dotenv import load_dotenv

load_dotenv()

class Config:
    # Bot Token (OPTIONAL - without it the Telegram admin surface is disabled)
    BOT_TOKEN = os.getenv("BOT_TOKEN")

    # Database Configuration
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASS = os.getenv("DB_PASS", "postgres")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "payouts")

    @property
    def DATABASE_URL(self):
        # Prefer DATABASE_URL env var if set (for SQLite support)
        url = os.getenv("DATABASE_URL")
        if url:
            return url

        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Admin chats that receive scheduler summaries and may use admin commands
    ADMIN_IDS = [int(x.strip()) for x in os.getenv("ADMIN_IDS", "").split(",") if x.strip() and x.strip().isdigit()]

    # Scheduling
    # All statement periods and schedule times are evaluated in this zone
    TIMEZONE_NAME = os.getenv("TIMEZONE", "America/New_York")
    POLL_INTERVAL_SECONDS = int(os.getenv("POLL_INTERVAL_SECONDS", "60"))

    # Hostaway (reservation provider)
    HOSTAWAY_API_URL = os.getenv("HOSTAWAY_API_URL", "https://api.hostaway.com/v1")
    HOSTAWAY_ACCOUNT_ID = os.getenv("HOSTAWAY_ACCOUNT_ID")
    HOSTAWAY_API_KEY = os.getenv("HOSTAWAY_API_KEY")

    @property
    def TIMEZONE(self) -> ZoneInfo:
        return ZoneInfo(self.TIMEZONE_NAME)

config = Config()

# Log configuration on startup
logging.info(f"Payout bot configured with {len(config.ADMIN_IDS)} admins")
logging.info(f"Database: {config.DATABASE_URL.split('@')[1] if '@' in config.DATABASE_URL else 'SQLite'}")
logging.info(f"Telegram surface: {'enabled' if config.BOT_TOKEN else 'disabled (no BOT_TOKEN)'}")
