#!/usr/bin/env python3
"""
Celery worker script for the TSR Fashion storefront.
Run this script to start the worker that delivers order and support emails.
"""

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app
    from core.config import settings

    celery_app.start([
        "worker",
        f"--loglevel={settings.LOG_LEVEL.lower()}",
        "--concurrency=2",
        "--without-gossip",
        "--without-mingle",
        "--without-heartbeat",
    ])
