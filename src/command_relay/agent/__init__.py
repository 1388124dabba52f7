"""Agent process: poll, guard, execute, report.

The agent keeps its own durable record of commands it has finished
executing (``IdempotencyGuard``). It is independent of the coordinator store:
the two databases never share a transaction.
"""
