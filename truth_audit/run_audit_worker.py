#!/usr/bin/env python3
"""
Run Audit Worker - executes the four-stage audit pipeline

Listens to queue:audit:high for run ids; polls for pending runs when idle.
Usage: python -m truth_audit.run_audit_worker
"""
from pathlib import Path

# Load .env from project root (one level up from truth_audit/)
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

import asyncio
import logging
from truth_audit.workers.audit_worker import run_audit_worker

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    print("🧾 Starting Audit Worker...")
    print("   Pipeline: Claims → Signal → Discrepancies → Truth Index")
    print("   Listening on: queue:audit:high")
    print("   Press Ctrl+C to stop\n")

    asyncio.run(run_audit_worker())
