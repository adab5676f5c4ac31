"""
Tool execution engine.

Looks tools up in the fixed registry, validates model-supplied arguments and
wraps every outcome in a ToolOutcome envelope so one failing call cannot take
down a whole batch.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.agents.tools import TOOL_REGISTRY, ToolContext
from app.errors import AppError
from app.schemas.tools import ToolInvocation, ToolOutcome

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Runs registered tools on behalf of one user."""

    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id

    async def execute(self, call: ToolInvocation, commit_creates: bool = True) -> ToolOutcome:
        spec = TOOL_REGISTRY.get(call.name)
        if spec is None:
            raise AppError(404, f"Tool '{call.name}' not found", "execute_tool")

        ctx = ToolContext(db=self.db, user_id=self.user_id, commit_creates=commit_creates)
        args = dict(call.args or {})
        args.pop("user_id", None)  # Injected from the context, never trusted from the model

        try:
            parsed = spec.args_schema.model_validate(args)
            result = spec.handler(ctx, parsed)
        except ValidationError as e:
            logger.warning(f"Invalid arguments for tool {call.name}: {e.error_count()} error(s)")
            return ToolOutcome(success=False, error=f"Invalid arguments for {call.name}: {e}")
        except AppError as e:
            logger.warning(f"Tool {call.name} failed: {e.message}")
            return ToolOutcome(success=False, error=e.message)
        except Exception as e:
            logger.error(f"Tool {call.name} raised an unexpected error: {e}", exc_info=True)
            return ToolOutcome(success=False, error=str(e))

        return ToolOutcome(success=True, data=result)

    async def execute_many(
        self, calls: List[ToolInvocation], commit_creates: bool = True
    ) -> List[ToolOutcome]:
        """Fan out concurrently; outcomes come back in call order."""
        for call in calls:
            if call.name not in TOOL_REGISTRY:
                raise AppError(404, f"Tool '{call.name}' not found", "execute_tool")
        return list(await asyncio.gather(*(self.execute(call, commit_creates) for call in calls)))

    async def execute_batch(
        self, calls: List[ToolInvocation], commit_creates: bool = True
    ) -> Dict[str, ToolOutcome]:
        """
        Execute calls concurrently and key the outcomes by tool name.
        Repeated names get a numeric suffix: name, name_2, name_3...
        """
        if not calls:
            return {}

        outcomes = await self.execute_many(calls, commit_creates)

        results: Dict[str, ToolOutcome] = {}
        for call, outcome in zip(calls, outcomes):
            results[result_key(results, call.name)] = outcome

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info(f"Executed {len(calls)} tool call(s), {succeeded} succeeded")
        return results


def result_key(existing: Dict[str, object], name: str) -> str:
    if name not in existing:
        return name
    suffix = 2
    while f"{name}_{suffix}" in existing:
        suffix += 1
    return f"{name}_{suffix}"


def dump_results(results: Dict[str, ToolOutcome]) -> Dict[str, dict]:
    """JSON-ready form of a name-keyed result map, as stored on sessions."""
    return {name: outcome.model_dump(mode="json") for name, outcome in results.items()}


def load_results(payload: Optional[Dict[str, dict]]) -> Dict[str, ToolOutcome]:
    return {name: ToolOutcome.model_validate(data) for name, data in (payload or {}).items()}
