"""Feedback definitions backed by the subscription engine.

A feedback *definition* describes one kind of check; a feedback *instance*
is a configured copy of it on a button. Instances register their entity
with the bridge when subscribed and are re-evaluated when the bridge signals
a recheck.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pyiobroker.models.state import StateValue
from pyiobroker.state.events import FeedbackKind

if TYPE_CHECKING:
    from pyiobroker.bridge import IobBridge

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedbackInstance:
    """One configured feedback on the control surface."""

    id: str
    kind: FeedbackKind
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def entity_id(self) -> str:
        return str(self.options.get("entity_id", ""))


@dataclass(frozen=True)
class FeedbackDefinition:
    kind: FeedbackKind
    type: str
    name: str
    description: str
    callback: Callable[[FeedbackInstance], Any]
    subscribe: Callable[[FeedbackInstance], None]
    unsubscribe: Callable[[FeedbackInstance], None]


def check_channel_state(bridge: IobBridge, feedback: FeedbackInstance) -> bool:
    """``True`` when the boolean state equals the configured ``state`` option."""
    state = bridge.current_state(feedback.entity_id)
    if state is None:
        return False
    is_on = state.val is True
    return is_on == bool(feedback.options.get("state"))


def read_value(bridge: IobBridge, feedback: FeedbackInstance) -> StateValue:
    return bridge.current_value(feedback.entity_id)


def read_last_updated(bridge: IobBridge, feedback: FeedbackInstance) -> int | None:
    return bridge.last_changed_timestamp(feedback.entity_id)


def _subscriber(bridge: IobBridge) -> Callable[[FeedbackInstance], None]:
    def subscribe(feedback: FeedbackInstance) -> None:
        if not feedback.entity_id:
            return
        bridge.register_dependent(feedback.entity_id, feedback.id, feedback.kind)

    return subscribe


def _unsubscriber(bridge: IobBridge) -> Callable[[FeedbackInstance], None]:
    def unsubscribe(feedback: FeedbackInstance) -> None:
        bridge.unregister_dependent(feedback.entity_id, feedback.id)

    return unsubscribe


def make_feedback_callback(
    bridge: IobBridge,
    evaluate: Callable[[IobBridge, FeedbackInstance], Any],
) -> Callable[[FeedbackInstance], Any]:
    """Wrap *evaluate* so that an instance whose entity option was edited
    is moved to its new entity before being evaluated.
    """

    def callback(feedback: FeedbackInstance) -> Any:
        registration = bridge.subscriptions.get_registration(feedback.id)
        if feedback.entity_id and (registration is None or registration.entity_id != feedback.entity_id):
            bridge.register_dependent(feedback.entity_id, feedback.id, feedback.kind)
        return evaluate(bridge, feedback)

    return callback


def build_feedback_definitions(bridge: IobBridge) -> dict[str, FeedbackDefinition]:
    subscribe = _subscriber(bridge)
    unsubscribe = _unsubscriber(bridge)
    return {
        FeedbackKind.CHANNEL_STATE.value: FeedbackDefinition(
            kind=FeedbackKind.CHANNEL_STATE,
            type="boolean",
            name="Change from switch state",
            description="If the switch state matches the rule, change style of the bank",
            callback=make_feedback_callback(bridge, check_channel_state),
            subscribe=subscribe,
            unsubscribe=unsubscribe,
        ),
        FeedbackKind.READ_VALUE.value: FeedbackDefinition(
            kind=FeedbackKind.READ_VALUE,
            type="value",
            name="Populate ioBroker state",
            description="Sync a state value from ioBroker",
            callback=make_feedback_callback(bridge, read_value),
            subscribe=subscribe,
            unsubscribe=unsubscribe,
        ),
        FeedbackKind.READ_LAST_UPDATED.value: FeedbackDefinition(
            kind=FeedbackKind.READ_LAST_UPDATED,
            type="value",
            name="Populate timestamp of last ioBroker state change",
            description="Sync the timestamp of the last state change from ioBroker",
            callback=make_feedback_callback(bridge, read_last_updated),
            subscribe=subscribe,
            unsubscribe=unsubscribe,
        ),
    }


def merge_feedback_definitions(*groups: Mapping[str, FeedbackDefinition]) -> dict[str, FeedbackDefinition]:
    """Merge definition groups; on duplicate keys the first group wins."""
    merged: dict[str, FeedbackDefinition] = {}
    for group in groups:
        for key, definition in group.items():
            if key in merged:
                _logger.warning("Duplicate feedback definition %r ignored", key)
                continue
            merged[key] = definition
    return merged
