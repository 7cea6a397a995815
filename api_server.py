from __future__ import annotations  # FastAPI server exposing the interview phase API

from api.app import create_app

app = create_app()
