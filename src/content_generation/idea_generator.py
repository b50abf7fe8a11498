"""Generates candidate video ideas for a channel"""

import logging
from typing import Any, List, Optional

from ..llm.chat_client import ChatCompletionClient
from .content_models import Idea, ProviderError
from .prompt_templates import PromptTemplates


class IdeaGenerator:
    """Asks the LLM for a batch of ideas in the channel's style"""

    def __init__(self, config, chat: Optional[ChatCompletionClient] = None):
        self.config = config
        self.logger = logging.getLogger("autopilot.ideas")
        self.chat = chat or ChatCompletionClient(config.llm, kind="ideas")
        self.prompt_templates = PromptTemplates()

    async def generate(self, channel, previous_idea: Optional[str] = None, count: int = 5) -> List[Idea]:
        """Return up to `count` ideas in provider order"""
        prompt = self.prompt_templates.get_idea_prompt(channel, count, previous_idea)

        try:
            data = await self.chat.complete_json(self.prompt_templates.IDEA_SYSTEM_PROMPT, prompt)
        except Exception as e:
            self.logger.error(f"Idea generation failed for channel {channel.id}: {e}")
            raise ProviderError(f"Idea provider error: {e}") from e

        ideas = self._coerce_ideas(data)
        if not ideas:
            raise ProviderError("Idea provider returned no usable ideas")

        self.logger.info(f"Generated {len(ideas)} ideas for channel {channel.id}")
        return ideas[:count]

    def _coerce_ideas(self, data: Any) -> List[Idea]:
        """Normalize {"ideas": [...]}, bare lists and plain strings into Idea objects"""
        if isinstance(data, dict):
            data = data.get("ideas") or data.get("items") or []
        if isinstance(data, str):
            data = [line for line in data.splitlines() if line.strip()]
        if not isinstance(data, list):
            return []

        ideas = []
        for item in data:
            if isinstance(item, dict):
                title = str(item.get("title") or "").strip()
                description = str(item.get("description") or "").strip()
            elif isinstance(item, str):
                title, _, description = item.strip().lstrip("-*0123456789. ").partition(":")
                title, description = title.strip(), description.strip()
            else:
                continue
            if title:
                ideas.append(Idea(title=title, description=description))
        return ideas
