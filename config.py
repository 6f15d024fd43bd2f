from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv()

BASE_DIR = Path(__file__).parent

# Data directory (gitignored)
DATA_DIR = BASE_DIR / "data"
DATA_DIR.mkdir(exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR}/timetable.db")

# GTFS Static
# ZSSK (Slovak railways) feed, or any GTFS feed with numeric ids and shapes.txt
GTFS_STATIC_URL: str = os.getenv("GTFS_STATIC_URL", "")
GTFS_REFRESH_HOURS: int = int(os.getenv("GTFS_REFRESH_HOURS", "24"))

# Network loading
# Decimal places kept when matching shape points / transfer points to stations.
COORD_PRECISION: int = int(os.getenv("COORD_PRECISION", "7"))
# Through coaches ("Ex 123 / R 456") clutter the view; drop them at load time.
EXCLUDE_THROUGH_COACHES: bool = os.getenv("EXCLUDE_THROUGH_COACHES", "1") == "1"

# Pointer selection
# Presses held longer than this are drags/pans, not clicks.
CLICK_THRESHOLD_MS: int = int(os.getenv("CLICK_THRESHOLD_MS", "250"))

# API
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
]
INGEST_API_KEY: str = os.getenv("INGEST_API_KEY", "")
