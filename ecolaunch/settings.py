"""
This module contains the configuration settings for the ecolaunch supervisor.
It defines state and log paths, supervisor timings and logging options.
Every uppercase name here becomes a key of the effective settings.
"""

import os
import sys
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
BASE_DIR = pathlib.Path(os.getenv("ECOLAUNCH_HOME", os.getcwd())).resolve()
STATE_DIR = BASE_DIR / ".ecolaunch"
LOGS_DIR = BASE_DIR / "logs"

#* --- State File Paths ---
PID_FILE_PATH = STATE_DIR / "apps.pid"
SHUTDOWN_SIGNAL_PATH = STATE_DIR / "shutdown.signal"
OVERRIDES_JSON_PATH = STATE_DIR / "overrides.json"
SUPERVISOR_LOG_PATH = LOGS_DIR / "ecolaunch.log"

#* --- Ecosystem File ---
# Looked up in this order when no file is given on the command line.
ECOSYSTEM_FILE_NAMES = (
    "ecosystem.config.js",
    "ecosystem.config.cjs",
    "ecosystem.config.json",
    "ecosystem.config.yaml",
    "ecosystem.config.yml",
)
DEFAULT_ECOSYSTEM_PATH = BASE_DIR / os.getenv("ECOLAUNCH_ECOSYSTEM", ECOSYSTEM_FILE_NAMES[0])

#* --- Python Executable ---
# Used to start the detached supervisor process.
PYTHON_EXECUTABLE = os.getenv("PYTHON_EXECUTABLE", sys.executable)
SUPERVISOR_PROCESS_TITLE = "ecolaunch - Supervisor"

#* --- Supervisor Settings ---
SUPERVISOR_SLEEP_INTERVAL = 2
MAX_RESTART_ATTEMPTS = 3
RESTART_COOLDOWN_PERIOD = 30   # seconds
GRACEFUL_SHUTDOWN_TIMEOUT = 10 # seconds before force-killing
WATCH_DEBOUNCE_SECONDS = 1.0
MIN_UPTIME = 1                 # seconds; shorter runs count as unstable restarts

#* --- Logging ---
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 3
LOG_TAIL_LINES = 20

# Grafana Loki (optional log shipping)
LOKI_ENABLED = os.getenv("LOKI_ENABLED", "False").lower() in ('true', '1', 't')
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "")
LOKI_FLUSH_INTERVAL = 5
LOKI_BATCH_SIZE = 200

#* --- Application variables ---
VERBOSE_LOGGING = False

#* --- MODIFIABLE SETTINGS (Changeable via the 'config set' command) ---
MODIFIABLE_SETTINGS = {
    "SUPERVISOR_SLEEP_INTERVAL", "MAX_RESTART_ATTEMPTS",
    "RESTART_COOLDOWN_PERIOD", "GRACEFUL_SHUTDOWN_TIMEOUT",
    "WATCH_DEBOUNCE_SECONDS", "MIN_UPTIME", "LOG_TAIL_LINES",
}
