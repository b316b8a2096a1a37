#!/usr/bin/env python3
"""
Run Stale Run Reaper - resets audit runs with expired heartbeats

Usage: python -m truth_audit.run_reaper
"""
from pathlib import Path

# Load .env from project root (one level up from truth_audit/)
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

import asyncio
import logging
from truth_audit.workers.run_reaper import run_reaper

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    print("🧹 Starting Stale Run Reaper...")
    print("   Press Ctrl+C to stop\n")

    asyncio.run(run_reaper())
