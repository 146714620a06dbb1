from langgraph.graph import END, StateGraph

from eventchat.workflow.agent_nodes import TurnNodes, route_by_intent
from eventchat.workflow.app_state import TurnState
from eventchat.workflow.creation_flow import CreationFlow
from eventchat.workflow.discovery_flow import DiscoveryFlow
from eventchat.workflow.registration_flow import RegistrationFlow
from eventchat.workflow.reminder_flow import ReminderFlow

FLOW_NODES = ("creation_flow", "discovery_flow", "registration_flow", "reminder_flow", "general_reply")


def _with_context(flow):
    """Sub-flows mutate the working context in place; hand it back so the graph state carries it."""
    async def node(state: TurnState) -> dict:
        update = await flow(state)
        update["context"] = state["context"]
        return update
    return node


# --- Graph Builder ---
def build_graph(nodes: TurnNodes, creation: CreationFlow, discovery: DiscoveryFlow,
                registration: RegistrationFlow, reminder: ReminderFlow):
    graph = StateGraph(TurnState)

    # Register nodes
    graph.add_node("resolve_intent", nodes.resolve_intent)
    graph.add_node("resolve_location", nodes.resolve_location)
    graph.add_node("creation_flow", _with_context(creation.run))
    graph.add_node("discovery_flow", _with_context(discovery.run))
    graph.add_node("registration_flow", _with_context(registration.run))
    graph.add_node("reminder_flow", _with_context(reminder.run))
    graph.add_node("general_reply", nodes.general_reply)
    graph.add_node("suggest", nodes.suggest)

    # Entry point
    graph.set_entry_point("resolve_intent")
    graph.add_edge("resolve_intent", "resolve_location")

    # One sub-flow per turn, chosen by the resolved intent
    graph.add_conditional_edges(
        "resolve_location",
        route_by_intent,
        {name: name for name in FLOW_NODES},
    )

    for name in FLOW_NODES:
        graph.add_edge(name, "suggest")
    graph.add_edge("suggest", END)

    return graph.compile()
