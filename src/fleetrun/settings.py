from __future__ import annotations
import os

ROOT = os.environ.get("FLEETRUN_ROOT", ".")
TAIL_POLL_SECONDS = float(os.environ.get("FLEETRUN_TAIL_INTERVAL", "0.2"))
MAX_CONCURRENT_RUNS = int(os.environ.get("FLEETRUN_MAX_RUNS", "4"))

LOCAL_MACHINE = "local"
KEYS_DIRNAME = "keys"
LOGS_DIRNAME = "logs"
SCRIPTS_DIRNAME = "scripts"
SETUP_FILENAMES = ("setup.yaml", "setup.yml", "setup.json")
