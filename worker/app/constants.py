"""Worker-level constants shared across modules."""
from __future__ import annotations


class DELETE_POLICY:
    # delete only messages whose processing succeeded; failures redeliver
    SUCCESSFUL = "successful"
    # delete every received message regardless of outcome
    ALL = "all"

    ALL_POLICIES = (SUCCESSFUL, ALL)


# Service limits for a single SQS ReceiveMessage / DeleteMessageBatch call.
SQS_MAX_BATCH_SIZE = 10
SQS_MAX_WAIT_SECONDS = 20
