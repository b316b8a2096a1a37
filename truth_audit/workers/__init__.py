"""
Workers - long-running audit processes

- audit_worker: claims runs and executes the four stages
- run_reaper: resets runs whose heartbeat went stale
"""
