"""Core adapter service logic: validate tool input, then execute the operation."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .contract import format_validation_error
from .executors import RestExecutor, render
from .logging import redact_payload
from .models import OperationResult
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class AdapterService:
    """Entry point for every tool call, whatever transport delivered it."""

    def __init__(self, tool_registry: ToolRegistry, executor: RestExecutor) -> None:
        self.tool_registry = tool_registry
        self.executor = executor

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> OperationResult:
        """
        Validate ``arguments`` against the tool's input contract and run it.

        Args:
            name: Tool name as listed by the registry
            arguments: Raw tool input from the caller

        Returns:
            The executor's result, or an error result when the tool is unknown
            or the input does not satisfy the contract.
        """
        tool = self.tool_registry.get(name)
        if tool is None:
            return OperationResult.failure(f"Unknown tool: {name}")

        try:
            validated = tool.input_model.model_validate(arguments or {})
        except ValidationError as exc:
            logger.info("Rejected input for tool=%s: %s", name, exc.error_count())
            return OperationResult.failure(f"Input validation failed: {format_validation_error(exc)}")

        payload = validated.model_dump(by_alias=True, exclude_unset=True)
        logger.debug("Validated tool=%s payload=%s", name, redact_payload(payload))
        return await self.executor.execute(tool.operation, payload)


def error_message(result: OperationResult) -> str:
    """Flatten an error result into a single message, keeping the diagnostic context."""
    if not result.structured:
        return result.text
    return f"{result.text}\n\n{render(result.structured)}"
