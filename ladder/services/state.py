from __future__ import annotations
import datetime

# Lifetimes of access and refresh tokens issued at login.
TOKEN_TTL = datetime.timedelta(hours=24)
REFRESH_TOKEN_TTL = datetime.timedelta(days=30)
