"""PyInstaller entry point for the chatdesk backend."""
import sys

if getattr(sys, 'frozen', False):
    sys.path.insert(0, sys._MEIPASS)

import uvicorn

from chatdesk.main import app

uvicorn.run(app, host="127.0.0.1", port=8765)
