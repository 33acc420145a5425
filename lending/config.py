"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration."""

    # Primary database (all writes, fresh reads)
    PRIMARY_DB_HOST = os.getenv("PRIMARY_DB_HOST", "localhost")
    PRIMARY_DB_PORT = os.getenv("PRIMARY_DB_PORT", "5432")
    PRIMARY_DB_NAME = os.getenv("PRIMARY_DB_NAME", "lending")
    PRIMARY_DB_USER = os.getenv("PRIMARY_DB_USER", "postgres")
    PRIMARY_DB_PASSWORD = os.getenv("PRIMARY_DB_PASSWORD", "")

    # Replica database (ordinary reads); falls back to the primary settings
    REPLICA_DB_HOST = os.getenv("REPLICA_DB_HOST", PRIMARY_DB_HOST)
    REPLICA_DB_PORT = os.getenv("REPLICA_DB_PORT", PRIMARY_DB_PORT)
    REPLICA_DB_NAME = os.getenv("REPLICA_DB_NAME", PRIMARY_DB_NAME)
    REPLICA_DB_USER = os.getenv("REPLICA_DB_USER", PRIMARY_DB_USER)
    REPLICA_DB_PASSWORD = os.getenv("REPLICA_DB_PASSWORD", PRIMARY_DB_PASSWORD)

    @property
    def PRIMARY_DATABASE_URL(self):
        """Build primary PostgreSQL connection string."""
        return (
            f"postgresql://{self.PRIMARY_DB_USER}:{self.PRIMARY_DB_PASSWORD}"
            f"@{self.PRIMARY_DB_HOST}:{self.PRIMARY_DB_PORT}/{self.PRIMARY_DB_NAME}"
        )

    @property
    def REPLICA_DATABASE_URL(self):
        """Build replica PostgreSQL connection string."""
        return (
            f"postgresql://{self.REPLICA_DB_USER}:{self.REPLICA_DB_PASSWORD}"
            f"@{self.REPLICA_DB_HOST}:{self.REPLICA_DB_PORT}/{self.REPLICA_DB_NAME}"
        )

    # Connection pools
    DB_MIN_CONN = int(os.getenv("DB_MIN_CONN", "1"))
    DB_MAX_CONN = int(os.getenv("DB_MAX_CONN", "10"))

    # Reads within this many ms of a write may be forced to the primary
    MAX_STALE_MS = int(os.getenv("MAX_STALE_MS", "2000"))

    # Pagination
    DEFAULT_PER_PAGE = int(os.getenv("DEFAULT_PER_PAGE", "15"))
    MAX_PER_PAGE = int(os.getenv("MAX_PER_PAGE", "100"))

    # Defaults
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    SEED_ON_STARTUP = os.getenv("SEED_ON_STARTUP", "false").lower() in ("true", "1", "yes")
