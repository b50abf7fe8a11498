"""Turns a selected idea into a render prompt and display title"""

import logging
from typing import Optional

from ..llm.chat_client import ChatCompletionClient
from .content_models import Idea, PromptResult, ProviderError
from .prompt_templates import PromptTemplates


class PromptGenerator:
    """Builds the text-to-video prompt for an idea"""

    def __init__(self, config, chat: Optional[ChatCompletionClient] = None):
        self.config = config
        self.logger = logging.getLogger("autopilot.prompts")
        self.chat = chat or ChatCompletionClient(config.llm, kind="prompt")
        self.prompt_templates = PromptTemplates()

    async def generate(self, channel, idea: Idea) -> PromptResult:
        prompt = self.prompt_templates.get_video_prompt(channel, idea.title, idea.description)

        try:
            data = await self.chat.complete_json(self.prompt_templates.PROMPT_SYSTEM_PROMPT, prompt)
        except Exception as e:
            self.logger.error(f"Prompt generation failed for channel {channel.id}: {e}")
            raise ProviderError(f"Prompt provider error: {e}") from e

        if not isinstance(data, dict):
            raise ProviderError("Prompt provider returned a non-JSON reply")

        render_prompt = str(data.get("prompt") or data.get("veoPrompt") or "").strip()
        if not render_prompt:
            raise ProviderError("Prompt provider returned an empty prompt")

        display_title = str(data.get("title") or data.get("videoTitle") or "").strip() or idea.title
        return PromptResult(render_prompt=render_prompt, display_title=display_title)
