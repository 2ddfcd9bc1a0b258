"""
Approval Kernel

Multi-tier sign-off for expense requests:
- Threshold-based tier resolution
- Layered authorization (override roles, role match, delegation)
- Lifecycle state machine with emergency bypass
- Append-only approval action history
- Optimistic-concurrency guarded transitions
"""

__version__ = "0.1.0"
