"""
AI assistant backed by the Anthropic Messages API.
"""
import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Dict, Any, List

from anthropic import Anthropic, APIError
from django.conf import settings

logger = logging.getLogger("ops")

MAX_TOKENS = 1024
CHAT_ROLES = ("user", "assistant")

SYSTEM_PROMPT = """You are an AI assistant for KeyHub Central, a business management platform that manages three interconnected companies:

1. **Keynote Digital (KD)** - Lead generation & marketing subscriptions
   - Generates leads via Google Ads, Meta, TikTok campaigns
   - Offers subscription tiers: Starter ($399), Growth ($899), Pro ($1,499+)
   - Tracks cost per lead (CPL) and campaign performance

2. **Key Trade Solutions (KTS)** - 1099 contractor network
   - Manages installers, sales reps, project managers, service techs
   - Rating tiers: Elite (10% commission), Pro (9%), Standard (8%)
   - Handles onboarding, W-9, insurance, ACH payments

3. **Key Renovations (KR)** - D2C home renovation sales
   - Job types: bathroom, kitchen, exterior renovations
   - Job stages: Lead > Sold > Front End Hold > Production > Scheduled > Started > Complete > Paid in Full
   - Tracks costs (material, labor) and margins

**Business Flow:**
- KD generates leads and sends them to KR for sales
- KR sells jobs and KTS provides contractors to execute them
- Revenue flows back through all three entities

**Your Role:**
- Answer questions about business metrics, performance, and trends
- Help users understand their data and make decisions
- Provide insights about leads, jobs, contractors, invoices
- Be concise and business-focused
- Use specific numbers when available from context
- If you don't have specific data, explain what metrics would be helpful

Keep responses concise and actionable. Use bullet points for clarity."""


class ChatError(Exception):
    """Raised when the assistant cannot produce a reply."""

    def __init__(self, code: str, status: int = 500):
        super().__init__(code)
        self.code = code
        self.status = status


@dataclass
class ChatReply:
    message: str
    model: str


@lru_cache(maxsize=1)
def _client_for(api_key: str) -> Anthropic:
    return Anthropic(api_key=api_key)


def client() -> Anthropic:
    """Anthropic client for the configured key; cached per key."""
    api_key = settings.ANTHROPIC_API_KEY
    if not api_key:
        raise ChatError("chat_not_configured")
    return _client_for(api_key)


def build_system_prompt(context: Optional[Dict[str, Any]] = None) -> str:
    if not context:
        return SYSTEM_PROMPT
    return f"{SYSTEM_PROMPT}\n\n**Current Business Context:**\n{json.dumps(context, indent=2, default=str)}"


def normalize_messages(messages) -> List[Dict[str, str]]:
    """Keep only user/assistant turns with text content."""
    if not isinstance(messages, list):
        raise ChatError("invalid_messages", status=400)

    cleaned = []
    for message in messages:
        if not isinstance(message, dict):
            continue
        role = message.get("role")
        content = message.get("content")
        if role in CHAT_ROLES and isinstance(content, str) and content.strip():
            cleaned.append({"role": role, "content": content})

    if not cleaned:
        raise ChatError("invalid_messages", status=400)
    return cleaned


def chat(messages, context: Optional[Dict[str, Any]] = None) -> ChatReply:
    conversation = normalize_messages(messages)
    model = settings.ANTHROPIC_MODEL

    try:
        response = client().messages.create(
            model=model,
            max_tokens=MAX_TOKENS,
            system=build_system_prompt(context),
            messages=conversation,
        )
    except APIError as e:
        logger.error(f"[CHAT] Anthropic API error: {e}")
        raise ChatError("chat_failed") from e

    if not response.content or response.content[0].type != "text":
        logger.error("[CHAT] Unexpected response content from Anthropic")
        raise ChatError("unexpected_response")

    return ChatReply(message=response.content[0].text, model=model)
