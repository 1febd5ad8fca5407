import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "daily_work_log")

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_HOURS = int(os.getenv("JWT_EXPIRES_HOURS", 24))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))

# Server
PORT = int(os.getenv("PORT", 8000))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
ENABLE_SCHEDULER = _flag("ENABLE_SCHEDULER")

# File storage. S3 is used only when a bucket is configured.
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
S3_BUCKET = os.getenv("S3_BUCKET")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
S3_PUBLIC_URL = os.getenv("S3_PUBLIC_URL")
