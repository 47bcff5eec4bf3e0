import os
import sys
from pathlib import Path

# Keep module-level app construction away from the working directory database.
os.environ.setdefault("STORAGE_URL", "memory://")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")

project_root = str(Path(__file__).resolve().parents[1])
if project_root not in sys.path:
    sys.path.insert(0, project_root)
