"""Position ledger: executions, FIFO lots, balances, and snapshots."""
