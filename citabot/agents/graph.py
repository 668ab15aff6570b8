from langgraph.graph import StateGraph, END
from citabot.agents.state import AgentState
from citabot.agents.nodes import (
    END_TURN,
    triage_node,
    understand_node,
    collect_node,
    choose_slot_node,
    reason_node,
    confirm_node,
    change_node,
    commit_node,
    cancel_node,
    reschedule_node,
    lookup_node,
    update_status_node,
    help_node,
)


# ==========================================================
# RUTAS DEL GRAFO
# ==========================================================


def route_next(state: AgentState):
    """
    Todos los nodos con salida condicional dejan su decisión en state["route"].
    Un valor ausente termina el turno.
    """
    return state.get("route") or END_TURN


# ==========================================================
# DEFINICIÓN DEL WORKFLOW
# ==========================================================

workflow = StateGraph(AgentState)

# Nodos
workflow.add_node("triage", triage_node)
workflow.add_node("understand", understand_node)
workflow.add_node("collect", collect_node)
workflow.add_node("choose_slot", choose_slot_node)
workflow.add_node("reason", reason_node)
workflow.add_node("confirm", confirm_node)
workflow.add_node("change", change_node)
workflow.add_node("commit", commit_node)
workflow.add_node("cancel", cancel_node)
workflow.add_node("reschedule", reschedule_node)
workflow.add_node("lookup", lookup_node)
workflow.add_node("update_status", update_status_node)
workflow.add_node("help", help_node)

# Punto de entrada
workflow.set_entry_point("triage")

# Cancelar/reagendar primero; luego el paso que la sesión está esperando.
# Sin paso pendiente → extracción de entidades.
workflow.add_conditional_edges(
    "triage",
    route_next,
    {
        "cancel": "cancel",
        "reschedule": "reschedule",
        "choose_slot": "choose_slot",
        "reason": "reason",
        "confirm": "confirm",
        "understand": "understand",
    },
)

workflow.add_conditional_edges(
    "understand",
    route_next,
    {
        "change": "change",
        "collect": "collect",
        "cancel": "cancel",
        "reschedule": "reschedule",
        "lookup": "lookup",
        "update_status": "update_status",
        "help": "help",
    },
)

# Reagendar con fecha en el mismo mensaje → se recolecta en este turno
workflow.add_conditional_edges(
    "reschedule",
    route_next,
    {
        "understand": "understand",
        "collect": "collect",
        END_TURN: END,
    },
)

# Borrador completo al reagendar, o "SI" en la confirmación → registrar
for name in ("collect", "choose_slot", "reason", "confirm"):
    workflow.add_conditional_edges(
        name,
        route_next,
        {
            "commit": "commit",
            END_TURN: END,
        },
    )

workflow.add_conditional_edges(
    "change",
    route_next,
    {
        "collect": "collect",
        END_TURN: END,
    },
)

# Nodos terminales para este turno
workflow.add_edge("commit", END)
workflow.add_edge("cancel", END)
workflow.add_edge("lookup", END)
workflow.add_edge("update_status", END)
workflow.add_edge("help", END)

# Grafo compilado
app_graph = workflow.compile()
