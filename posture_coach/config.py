# Configuration Module - Procedural approach with module-level variables
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Database Configuration (remote stats service)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./posture_stats.db")

# JWT Configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "posture-coach-development-secret-key")  # Override in .env
JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", str(24 * 7)))

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Keypoint Validation
KEYPOINT_MIN_SCORE = 0.3
NOSE = "nose"
LEFT_SHOULDER = "left_shoulder"
RIGHT_SHOULDER = "right_shoulder"
REQUIRED_KEYPOINTS = (NOSE, LEFT_SHOULDER, RIGHT_SHOULDER)

# Posture Classification Thresholds
BAD_POSTURE_DURATION_MS = int(os.getenv("BAD_POSTURE_DURATION_MS", "15000"))  # Sustained bad before alert
GOOD_POSTURE_REQUIRED_MS = int(os.getenv("GOOD_POSTURE_REQUIRED_MS", "1000"))  # Sustained good before clear
THRESHOLD_MULTIPLIER = float(os.getenv("THRESHOLD_MULTIPLIER", "0.4"))
THRESHOLD_MULTIPLIER_MIN = 0.4
THRESHOLD_MULTIPLIER_MAX = 0.8

# Loop Cadence
FRAME_FPS = int(os.getenv("FRAME_FPS", "20"))
BACKGROUND_TICK_SECONDS = float(os.getenv("BACKGROUND_TICK_SECONDS", "1.0"))
FRAME_LOG_EVERY = 100  # Log every Nth processed frame

# Break Scheduling
CHECKPOINT_INTERVAL_MINUTES = float(os.getenv("CHECKPOINT_INTERVAL_MINUTES", "10"))

# (minimum alerts per minute, break minutes, label), checked top to bottom
BREAK_TIERS = [
    (1.0, 10, "High"),
    (0.5, 5, "Moderate"),
    (0.0, 2, "Low"),
]

# What a checkpoint with zero alerts does:
#   "mandatory" - falls into the lowest tier (2-minute break), matches the deployed behavior
#   "skip"      - no break is due
ZERO_ALERT_BREAK_POLICY = os.getenv("ZERO_ALERT_BREAK_POLICY", "mandatory").lower()
ZERO_ALERT_BREAK_POLICIES = ("mandatory", "skip")

# Local Persistence
LOCAL_STATS_PATH = os.getenv("LOCAL_STATS_PATH", os.path.join("data", "local_stats.json"))
STATS_STORAGE_PREFIX = "stats:"

# Remote Sync
REMOTE_API_BASE_URL = os.getenv("REMOTE_API_BASE_URL", "http://localhost:8000/api")
REMOTE_SYNC_INTERVAL_SECONDS = float(os.getenv("REMOTE_SYNC_INTERVAL_SECONDS", "30"))
REMOTE_TIMEOUT_SECONDS = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "5"))

# Discipline feedback (alert count upper bounds)
DISCIPLINE_MINOR_ALERTS = 5
