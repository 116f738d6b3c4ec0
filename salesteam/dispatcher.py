"""
Event dispatcher: the single entry point the host calls per access event.

Classifies the context by message name, routes it to the engine and owns
error translation: any failure in the route is traced once and re-raised as a
PluginExecutionError. Unknown messages are ignored.

The host controls delivery (it may deliver an event more than once); the
engine's no-duplicate-open rule makes redelivery harmless.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from .config import Settings
from .engine import Clock, Decision, ParticipationEngine, utcnow
from .errors import PluginExecutionError
from .events import ExecutionContext, MessageName, grant_event, revoke_event
from .store.base import RecordStore
from .trace import LoggingTracer, TracingService


@dataclass
class Services:
    """Collaborators for one dispatcher invocation."""

    store: RecordStore
    tracer: TracingService = field(default_factory=LoggingTracer)
    clock: Clock = utcnow
    settings: Settings = field(default_factory=Settings)

    def engine(self) -> ParticipationEngine:
        return ParticipationEngine(
            self.store,
            self.tracer,
            clock=self.clock,
            require_open_on_revoke=self.settings.revoke.require_open,
        )


Route = Callable[[ParticipationEngine, ExecutionContext], Decision]

ROUTES: dict[str, Route] = {
    MessageName.GRANT_ACCESS.value: lambda engine, ctx: engine.handle_grant(grant_event(ctx)),
    MessageName.REVOKE_ACCESS.value: lambda engine, ctx: engine.handle_revoke(revoke_event(ctx)),
}


def dispatch(context: ExecutionContext, services: Services) -> Decision | None:
    """
    Handle one access-control event.

    Returns the engine's Decision, or None when the message is not one the
    handler reacts to.

    Raises:
        PluginExecutionError: wrapping any failure while handling the event.
    """
    route = ROUTES.get(context.message_name)
    if route is None:
        return None

    try:
        return route(services.engine(), context)
    except Exception as e:
        services.tracer.trace(f"Error in dispatch: {e}")
        raise PluginExecutionError(
            f"An error occurred in the sales team participation handler: {e}",
            {
                "message_name": context.message_name,
                "correlation_id": context.correlation_id,
                "error_type": type(e).__name__,
            },
        ) from e
