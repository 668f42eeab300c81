"""
This module contains the default configuration settings for cozy.
It defines supervisor limits, timings, and where the project manifest is read from.
Values can be overridden through `COZY_<NAME>` environment variables (see config.py).
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)

#* --- Project Manifest ---
CONFIG_FILE_NAME = "package.json"
CONFIG_KEY = "cozy"
NPM_RUNNER = "yarn"

#* --- Supervisor Settings ---
MAX_RESTART_ATTEMPTS = 3
KILL_CONFIRM_TIMEOUT = 5        # seconds to wait for a killed tree to disappear

#* --- Parallel Workflow Settings ---
PROBE_INTERVAL_SECONDS = 3
SHUTDOWN_SETTLE_SECONDS = 2     # grace for in-flight stops before the launcher exits

#* --- Application variables ---
VERBOSE_LOGGING = os.getenv("COZY_VERBOSE", "False").lower() in ('true', '1', 't')

#* --- MODIFIABLE SETTINGS (Changeable through COZY_<NAME> environment variables) ---
MODIFIABLE_SETTINGS = {
    "CONFIG_FILE_NAME", "CONFIG_KEY", "NPM_RUNNER",
    "KILL_CONFIRM_TIMEOUT",
    "PROBE_INTERVAL_SECONDS", "SHUTDOWN_SETTLE_SECONDS",
}
