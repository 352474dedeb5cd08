import os
from dotenv import load_dotenv

load_dotenv() # Load .env file from project root if running locally

DATABASE_USER = os.getenv("POSTGRES_USER", "user")
DATABASE_PASSWORD = os.getenv("POSTGRES_PASSWORD", "password")
DATABASE_HOST = os.getenv("POSTGRES_HOST", "postgres") # Docker service name
DATABASE_PORT = os.getenv("POSTGRES_PORT", "5432")
DATABASE_NAME = os.getenv("POSTGRES_DB", "stock_tracker_db")

# Async database URL for SQLAlchemy. DATABASE_URL wins when set (e.g. sqlite+aiosqlite:///./inventory.db)
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DATABASE_USER}:{DATABASE_PASSWORD}@{DATABASE_HOST}:{DATABASE_PORT}/{DATABASE_NAME}",
)
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes")

# For Uvicorn binding inside container
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8001"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Bearer token signing
TOKEN_SECRET = os.getenv("TOKEN_SECRET", "your-secret-key-change-this")
TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "24"))

PASSWORD_HASH_ITERATIONS = int(os.getenv("PASSWORD_HASH_ITERATIONS", "260000"))

# Upper bound on rows returned by the transaction history endpoint
TRANSACTION_HISTORY_LIMIT = 100
