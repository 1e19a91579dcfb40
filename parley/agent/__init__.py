"""Agent layer -- conversation store, tool execution and the tool loop.

Public API:
    Agent            - send()/stream() with automatic tool resolution
    Conversation     - lock-guarded message log with budget pruning
    TokenEstimator   - default heuristic for pruning
    ToolDispatcher   - name -> handler tool executor
    FunctionTool     - tool definition bundled with its handler
    ToolExecutor     - protocol for custom executors
"""

from parley.agent.agent import MAX_ITERATIONS, Agent
from parley.agent.conversation import Conversation
from parley.agent.estimator import MessageEstimator, TokenEstimator
from parley.agent.tools import FunctionTool, ToolDispatcher, ToolExecutor

__all__ = [
    "MAX_ITERATIONS",
    "Agent",
    "Conversation",
    "FunctionTool",
    "MessageEstimator",
    "TokenEstimator",
    "ToolDispatcher",
    "ToolExecutor",
]
