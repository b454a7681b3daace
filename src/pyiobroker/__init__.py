"""pyiobroker - Async subscription engine for ioBroker-backed control surfaces."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyiobroker")
except PackageNotFoundError:
    __version__ = "0+local"

from pyiobroker.bridge import ConnectionStatus, IobBridge
from pyiobroker.client import IobClient
from pyiobroker.config import IobConfig
from pyiobroker.exceptions import (
    IobConfigError,
    IobConnectionError,
    IobError,
    IobNotConnectedError,
    IobProtocolError,
    IobRemoteError,
)
from pyiobroker.feedbacks import FeedbackDefinition, FeedbackInstance, build_feedback_definitions
from pyiobroker.models import IobObject, IobObjectCommon, IobState
from pyiobroker.state.events import FeedbackKind, Registration
from pyiobroker.state.index import EntitySubscriptions

__all__ = [
    "__version__",
    "ConnectionStatus",
    "EntitySubscriptions",
    "FeedbackDefinition",
    "FeedbackInstance",
    "FeedbackKind",
    "IobBridge",
    "IobClient",
    "IobConfig",
    "IobConfigError",
    "IobConnectionError",
    "IobError",
    "IobNotConnectedError",
    "IobObject",
    "IobObjectCommon",
    "IobProtocolError",
    "IobRemoteError",
    "IobState",
    "Registration",
    "build_feedback_definitions",
]
