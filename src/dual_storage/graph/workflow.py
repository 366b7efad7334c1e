"""LangGraph workflow assembly for one migrated record."""

from langgraph.graph import END, StateGraph

from dual_storage.engine.writer import DualStorageWriter
from dual_storage.graph.nodes import backoff, finalize, validate, write
from dual_storage.graph.state import RecordState


def build_record_graph(
    *,
    writer: DualStorageWriter,
    skip_threshold: int = 60,
    threshold: int = 80,
    base_delay_s: float = 1.0,
):
    def _validate(state: RecordState) -> RecordState:
        return validate.run(state, skip_threshold=skip_threshold, threshold=threshold)

    async def _write(state: RecordState) -> RecordState:
        return await write.run(state, writer=writer)

    async def _backoff(state: RecordState) -> RecordState:
        return await backoff.run(state, base_delay_s=base_delay_s)

    def _after_validate(state: RecordState) -> str:
        return "write" if state.get("status") == "writing" else "done"

    def _should_retry(state: RecordState) -> str:
        if state.get("status") == "succeeded" or not state.get("transient", False):
            return "done"
        if int(state.get("attempt", 0)) < int(state.get("max_retries", 1)):
            return "retry"
        return "done"

    graph = StateGraph(RecordState)

    graph.add_node("validate", _validate)
    graph.add_node("write", _write)
    graph.add_node("backoff", _backoff)
    graph.add_node("finalize", finalize.run)

    graph.set_entry_point("validate")
    graph.add_conditional_edges("validate", _after_validate, {"write": "write", "done": "finalize"})
    graph.add_conditional_edges("write", _should_retry, {"retry": "backoff", "done": "finalize"})
    graph.add_edge("backoff", "write")
    graph.add_edge("finalize", END)

    return graph.compile()


def recursion_limit(max_retries: int) -> int:
    # validate + finalize + (write, backoff) per attempt, with headroom.
    return 2 * max_retries + 5
