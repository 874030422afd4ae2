from typing import Any, Dict, List, Mapping, Protocol


class TaskStore(Protocol):
    """Durable CRUD over task payloads.

    Payload keys may use any casing the store likes. Implementations raise
    NotFound, TransientFailure or ValidationFailure from ``.errors``.
    """

    async def get(self, task_id: int) -> Dict[str, Any]: ...

    async def list(self) -> List[Dict[str, Any]]: ...

    async def create(self, task: Mapping[str, Any]) -> Dict[str, Any]: ...

    async def update(self, task_id: int, partial: Mapping[str, Any]) -> Dict[str, Any]: ...

    async def delete(self, task_id: int) -> None: ...
