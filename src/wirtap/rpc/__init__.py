"""Web Inspector RPC transport.

PUBLIC API:
  - RpcClient: Transport-independent client base
  - WebSocketRpcClient: Client over an inspector WebSocket relay
  - RpcMessageHandler: Incoming message dispatcher
  - RemoteMessages: Outgoing message builders
  - PageReadinessDetector: Readiness check for page attach
"""

from wirtap.rpc.client import TRANSPORT_CLOSED, PageReadinessDetector, RpcClient
from wirtap.rpc.handler import RpcMessageHandler
from wirtap.rpc.messages import RemoteMessages
from wirtap.rpc.websocket import WebSocketRpcClient

__all__ = [
    "RpcClient",
    "WebSocketRpcClient",
    "RpcMessageHandler",
    "RemoteMessages",
    "PageReadinessDetector",
    "TRANSPORT_CLOSED",
]
