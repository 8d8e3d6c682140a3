# Ensure '<repo>/backend' is on sys.path so 'import lessonbook' and
# 'import tests.helpers' work whether pytest runs from the repo root or backend/.
from pathlib import Path
import sys

_BACKEND_ROOT = Path(__file__).resolve().parent  # <repo>/backend
if str(_BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(_BACKEND_ROOT))

# Throwaway SQLite files written by local runs of the app
collect_ignore_glob = ["*.db"]
