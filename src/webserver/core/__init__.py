"""
Networking and concurrency primitives shared by both listeners.

    connection.py      Connection: buffered reads, streamed writes
    socket_server.py   SocketServer: bind, listen, interruptible accept
    thread_pool.py     ThreadPool: workers that run connections
"""

from .connection import Connection, ConnectionState, RequestTooLarge
from .socket_server import SocketServer
from .thread_pool import ThreadPool, Worker, WorkerState

__all__ = [
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
    "SocketServer",
    "ThreadPool",
    "Worker",
    "WorkerState",
]
