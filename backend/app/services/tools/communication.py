"""
Outreach tools: email through the user's Gmail account and phone calls through Vapi.

Subject lines, bodies, first messages and call prompts are generated from a
task context the model fills in.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.services.gmail_service import gmail_service
from app.services.openai_service import openai_service
from app.services.tools.base import Tool
from app.services.vapi_service import vapi_service

logger = logging.getLogger(__name__)


class TaskContext(BaseModel):
    task_type: str
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    user_goal: str
    required_info: Optional[List[str]] = None
    constraints: Optional[List[str]] = None

    @property
    def counterpart(self) -> str:
        return self.business_name or f"a {self.business_type or 'business'}"


class EmailTaskContext(TaskContext):
    recipient_name: Optional[str] = None
    tone: Optional[str] = None
    urgency: Optional[str] = None


def _bullets(title: str, items: Optional[List[str]]) -> str:
    if not items:
        return ""
    return f"\n{title}:\n" + "\n".join(f"- {item}" for item in items)


# ---------------------------
# Email
# ---------------------------

async def generate_email_subject(context: EmailTaskContext) -> str:
    system = (
        "You are an AI assistant crafting an email subject line. Create a clear, professional subject "
        "that is concise, states the purpose of the email, avoids spam trigger words and stays under "
        "50 characters if possible.\n\n"
        f"- Task Type: {context.task_type}\n"
        f"- Business: {context.business_name or 'the business'}\n"
        f"- Goal: {context.user_goal}\n"
        f"- Urgency: {context.urgency or 'normal'}"
    )
    text = await openai_service.generate_text(
        prompt=f"Generate a subject line for an email to {context.counterpart} regarding {context.user_goal}.",
        system=system,
        model=openai_service.chat_model,
    )
    return text.strip().strip('"')


async def generate_email_body(context: EmailTaskContext, subject: str) -> str:
    system = (
        "You are an AI assistant composing a professional email. Open with an appropriate greeting, "
        "state the purpose clearly, provide the necessary information, include a clear call to action "
        f"and close professionally. Use a {context.tone or 'professional'} tone.\n\n"
        f"- Task Type: {context.task_type}\n"
        f"- Recipient: {context.recipient_name or 'the recipient'}\n"
        f"- Business: {context.business_name or context.business_type}\n"
        f"- Goal: {context.user_goal}"
        + _bullets("Required Information", context.required_info)
        + _bullets("Constraints", context.constraints)
    )
    text = await openai_service.generate_text(
        prompt=(
            f'Write a complete email body for an email with subject "{subject}" '
            f"to {context.counterpart} regarding {context.user_goal}."
        ),
        system=system,
        model=openai_service.chat_model,
    )
    return text.strip()


class SendEmailArgs(BaseModel):
    to: str = Field(..., description="The recipient email address")
    task_context: EmailTaskContext = Field(..., description="Context about the task being performed in the email")


class SendEmailTool(Tool):
    name = "send_email"
    description = "Send an email from the user's connected Gmail account and track the reply thread"
    args_model = SendEmailArgs

    async def execute(self, args: SendEmailArgs) -> Dict[str, Any]:
        subject = await generate_email_subject(args.task_context)
        body = await generate_email_body(args.task_context, subject)

        thread_id = await gmail_service.initiate_thread(
            self.context.user.id, args.to, subject, body, self.context.chat_id
        )
        return {
            "success": True,
            "message": f"Email sent successfully to {args.to}",
            "thread_id": thread_id,
            "subject": subject,
            "preview": body[:100] + "...",
        }


# ---------------------------
# Phone
# ---------------------------

CALL_GUIDELINES = """## General Guidelines
- Maintain professional and natural conversation flow
- Focus on task completion while being courteous
- Ask clarifying questions when needed
- Confirm important details explicitly
- Handle objections professionally
- Know when to escalate or end the call
- Protect user's interests and information
- Stay within authorized boundaries
- Document important information received"""


async def generate_first_message(context: TaskContext) -> str:
    system = (
        "You are an AI assistant making a phone call on behalf of a user. Generate a professional, "
        "natural first message that greets the recipient, states your name and purpose clearly and "
        "begins addressing the specific task. DO NOT mention that you are an AI assistant.\n\n"
        f"- Task Type: {context.task_type}\n"
        f"- Business: {context.business_name or 'the business'}\n"
        f"- Goal: {context.user_goal}"
    )
    text = await openai_service.generate_text(
        prompt=f"Generate an opening message for a call to {context.counterpart} regarding {context.user_goal}.",
        system=system,
        model=openai_service.chat_model,
    )
    return text.strip()


async def generate_call_system_prompt(context: TaskContext) -> str:
    system = (
        "Create a system prompt for an AI assistant making a phone call. Define the assistant's purpose, "
        "persona, the expected conversation flow, task-specific objectives and success criteria.\n\n"
        f"Task Context:\n{json.dumps(context.model_dump(exclude_none=True), indent=2)}"
    )
    text = await openai_service.generate_text(
        prompt=(
            f"Create a detailed system prompt for an AI assistant that needs to {context.user_goal} "
            f"through a phone call with {context.counterpart}."
        ),
        system=system,
        model=openai_service.chat_model,
    )
    return (
        f"# Task-Specific Call Assistant Prompt\n\n{text.strip()}\n\n"
        f"## Task Context\n- Type: {context.task_type}\n"
        f"- Business: {context.business_name or context.business_type}\n"
        f"- Goal: {context.user_goal}"
        + _bullets("Required Information", context.required_info)
        + _bullets("Constraints", context.constraints)
        + f"\n\n{CALL_GUIDELINES}"
    )


class CallPhoneArgs(BaseModel):
    phone_number: str = Field(..., description="The phone number to call (in E.164 format, e.g., +11231231234)")
    schedule_time: Optional[str] = Field(
        None, description="Optional ISO date-time string for scheduling the call (e.g., 2025-05-30T00:00:00Z)"
    )
    assistant_id: Optional[str] = Field(None, description="The Vapi assistant ID to use for the call")
    phone_number_id: Optional[str] = Field(None, description="The ID of the phone number to call from")
    task_context: TaskContext = Field(..., description="Context about the task being performed in the call")


class CallPhoneTool(Tool):
    name = "call_phone"
    description = "Make an outbound phone call using Vapi AI"
    args_model = CallPhoneArgs

    async def execute(self, args: CallPhoneArgs) -> Dict[str, Any]:
        first_message = await generate_first_message(args.task_context)
        system_prompt = await generate_call_system_prompt(args.task_context)

        call = await vapi_service.create_call(
            args.phone_number,
            first_message,
            system_prompt,
            schedule_time=args.schedule_time,
            assistant_id=args.assistant_id,
            phone_number_id=args.phone_number_id,
        )
        message = (
            f"Call scheduled to {args.phone_number} for {args.schedule_time}"
            if args.schedule_time else f"Call initiated to {args.phone_number}"
        )
        return {
            "success": True,
            "message": message,
            "call_id": call.get("id"),
            "first_message": first_message,
            "system_prompt": system_prompt,
        }
