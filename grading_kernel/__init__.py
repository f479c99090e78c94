"""
Grading Kernel - card grading submission workflow

A state-machine core for physical card grading submissions with:
- An explicit status catalog with a return-method branch
- Pure transition validation with typed rejections
- Atomic status + transition log persistence
- Hash-chained, append-only transition log
- Read-time merge of internal history with on-chain ledger events
"""

__version__ = "0.1.0"
