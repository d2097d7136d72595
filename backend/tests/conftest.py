import os
import tempfile

# backend.main wires its database and config at import time
_workdir = tempfile.mkdtemp(prefix="focus-tracker-tests-")
os.environ.setdefault("FOCUS_DB_PATH", os.path.join(_workdir, "focus.db"))
os.environ.setdefault("FOCUS_CONFIG", os.path.join(_workdir, "settings.yaml"))
for _name in ("FOCUS_BACKEND_BASE", "FOCUS_USER_ID", "FOCUS_AUTH_TOKEN"):
    os.environ.pop(_name, None)
