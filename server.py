#!/usr/bin/env python3
"""
Local runner entrypoint.

The engine lives under `chartsync_app/`.
Use `python3 server.py SESSION_STATE_ID TOKEN_MINT` to drive one session.
"""

from chartsync_app.main import run


if __name__ == "__main__":
    run()
