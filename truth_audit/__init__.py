"""
Truth Audit - progressive audit pipeline for manufacturer product claims.

Four fixed stages per subject:
1. Claim extraction      - attribute bag → claim profile
2. Signal aggregation    - community praise / issues (degrades to empty)
3. Discrepancy finding   - repair, normalize, dedup, score
4. Truth Index           - deterministic weighted score + gated adjustment
"""

__version__ = "0.3.0"
