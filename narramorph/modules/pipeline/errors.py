from __future__ import annotations


class PipelineError(RuntimeError):
    def __init__(self, *, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class NodeNotFoundError(PipelineError):
    def __init__(self, node_id: str):
        super().__init__(code="NODE_NOT_FOUND", message=f"node not found: {node_id}")
        self.node_id = node_id
