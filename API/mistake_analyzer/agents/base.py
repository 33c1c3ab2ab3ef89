from abc import ABC, abstractmethod
from typing import Any


class BaseAgent(ABC):
    """One model-backed step. ``name`` labels its calls in logs and metrics."""

    name: str = "agent"

    @abstractmethod
    async def run(self, input_data: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError
