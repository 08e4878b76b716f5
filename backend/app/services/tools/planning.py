import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from app.services.openai_service import openai_service
from app.services.tools.base import Tool

logger = logging.getLogger(__name__)

PLANNING_PROMPT = """
You are a task planning assistant. Your job is to break down complex tasks into clear, executable steps.

For each task, you should:
1. Understand the main goal
2. Break it down into logical steps
3. For each step, explain:
   - What needs to be done
   - Why it's necessary
   - Which tool to use
   - What input the tool needs
   - Which steps (if any) must complete first

Return your plan in this JSON format:
{
  "goal": "Clear statement of what we're trying to achieve",
  "steps": [
    {
      "description": "What needs to be done",
      "reason": "Why this step is necessary",
      "tool": "name_of_tool",
      "input": {"param1": "value1"},
      "requires": ["step1"]
    }
  ]
}

Available tools:
- search_web: Search the internet for information
- scrape_website: Extract content from websites
- create_document: Create new documents or code
- update_document: Update existing documents
- send_email: Send emails (requires user approval)
- call_phone: Make phone calls (requires user approval)
"""


class PlanTaskArgs(BaseModel):
    task: str = Field(..., description="The task to plan")
    context: Optional[str] = Field(None, description="Additional context about the task")


class PlanTaskTool(Tool):
    name = "plan_task"
    description = "Create a structured plan for LLM execution"
    args_model = PlanTaskArgs

    async def execute(self, args: PlanTaskArgs) -> Dict[str, Any]:
        prompt = f"Please help me plan this task:\n\n{args.task}"
        if args.context:
            prompt += f"\n\nAdditional context:\n{args.context}"

        try:
            plan = await openai_service.generate_json(prompt=prompt, system=PLANNING_PROMPT)
        except Exception as e:
            logger.error(f"Failed to plan task: {e}")
            return {"goal": args.task, "steps": []}

        if not plan.get("goal") or not isinstance(plan.get("steps"), list):
            logger.warning("Generated plan does not match expected structure")
            return {"goal": args.task, "steps": []}
        return plan
