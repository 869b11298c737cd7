"""Configuration settings for the filedrop upload service."""
import os

# Upload limits
MAX_UPLOAD_SIZE = int(os.getenv("FILEDROP_MAX_UPLOAD_SIZE", 100 * 1024 * 1024))  # 100MB
MULTIPART_OVERHEAD = 64 * 1024  # boundaries and part headers around the payload
UPLOAD_FIELD = "filedata"
CHUNK_SIZE = 8192

# Directory paths
DATA_DIR = os.getenv("FILEDROP_DATA_DIR", "./uploads")
TEMP_DIR = os.getenv("FILEDROP_TEMP_DIR", "./uploads_tmp")
LOG_DIR = os.getenv("FILEDROP_LOG_DIR", "./logs")

# Metadata index
DATABASE_URL = os.getenv("FILEDROP_DATABASE_URL", "sqlite:///./database.sqlite")

# Server
HOST = os.getenv("FILEDROP_HOST", "0.0.0.0")
PORT = int(os.getenv("FILEDROP_PORT", 3000))
