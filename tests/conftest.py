import os
import tempfile

# app.py creates its SQLite file at import time; keep it out of the checkout.
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="sms-notifier-tests-"))
os.environ.pop("HOOK_TOKEN", None)
