"""
Clients Module
==============

Pluggable rewriter and cluster execution clients.
"""

from query_verifier.clients.base import ExecutionClient, QueryRewriter, call_remote
from query_verifier.clients.mock import MockExecutionClient
from query_verifier.clients.rewriter import TableMaterializingRewriter
from query_verifier.clients.sqlite import SQLiteExecutionClient

__all__ = [
    "ExecutionClient",
    "QueryRewriter",
    "call_remote",
    "MockExecutionClient",
    "TableMaterializingRewriter",
    "SQLiteExecutionClient",
]
