"""SQLite persistence for conversations, the message ledger, and approvals."""

from dealflow.state.approvals import ApprovalQueue, Resolution
from dealflow.state.database import Database, open_database
from dealflow.state.ledger import MessageLedger
from dealflow.state.schema import init_dealflow_tables
from dealflow.state.store import ConversationStore

__all__ = [
    "ApprovalQueue",
    "ConversationStore",
    "Database",
    "MessageLedger",
    "Resolution",
    "init_dealflow_tables",
    "open_database",
]
