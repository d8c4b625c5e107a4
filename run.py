"""Development entry point for running the flood-risk service."""

import os
import sys
from roadrisk.app import create_app
from roadrisk.config import DevConfig
from dotenv import load_dotenv

if getattr(sys, "frozen", False):
    load_dotenv(os.path.join(sys._MEIPASS, ".env"))
else:
    load_dotenv()

app = create_app(DevConfig)

if __name__ == "__main__":
    app.run(
        host=os.getenv("ROADRISK_HOST", "127.0.0.1"),
        port=int(os.getenv("ROADRISK_PORT", "5000")),
    )
