"""Prompt templates for idea and render-prompt generation"""

from typing import Any, Dict, Optional

LANGUAGE_NAMES = {
    "ru": "Russian",
    "kk": "Kazakh",
    "en": "English",
}


class _SafeDict(dict):
    """Leaves unknown {placeholders} untouched"""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_template(template: str, values: Dict[str, Any]) -> str:
    return template.format_map(_SafeDict(values))


class PromptTemplates:
    """Collection of prompt templates used by the automation pipeline"""

    IDEA_SYSTEM_PROMPT = (
        "You are a creative producer for short AI-generated videos. "
        "Always answer with a JSON object."
    )

    PROMPT_SYSTEM_PROMPT = (
        "You write precise prompts for a text-to-video model. "
        "Always answer with a JSON object."
    )

    DEFAULT_IDEA_TEMPLATE = """
Channel: {channel_name}
Style: {description}

Suggest {count} fresh ideas for {duration_seconds}-second videos for this channel.
"""

    DEFAULT_VIDEO_TEMPLATE = """
Channel: {channel_name}
Style: {description}

Write a detailed prompt for a {duration_seconds}-second video about:
{idea_title}. {idea_description}
"""

    @staticmethod
    def _channel_values(channel) -> Dict[str, Any]:
        return {
            "channel_name": channel.name,
            "description": channel.description,
            "language": LANGUAGE_NAMES.get(channel.language, channel.language),
            "duration_seconds": channel.duration_seconds,
        }

    @classmethod
    def get_idea_prompt(cls, channel, count: int, previous_idea: Optional[str] = None) -> str:
        """Prompt asking for a batch of ideas in the channel's style"""
        values = cls._channel_values(channel)
        values.update(count=count, previous_idea=previous_idea or "")

        body = render_template(channel.idea_prompt_template or cls.DEFAULT_IDEA_TEMPLATE, values)
        avoid = f"\nDo not repeat this previous idea: {previous_idea}\n" if previous_idea else ""

        prompt = f"""
{body.strip()}
{avoid}
Write in {values['language']}. Return exactly {count} ideas as JSON:
{{"ideas": [{{"title": "short title", "description": "one or two sentences"}}]}}
"""
        return prompt.strip()

    @classmethod
    def get_video_prompt(cls, channel, idea_title: str, idea_description: str) -> str:
        """Prompt asking for a render prompt and display title for one idea"""
        values = cls._channel_values(channel)
        values.update(idea_title=idea_title, idea_description=idea_description)

        body = render_template(channel.video_prompt_template or cls.DEFAULT_VIDEO_TEMPLATE, values)
        prompt = f"""
{body.strip()}

Idea: {idea_title}
Details: {idea_description}

Return JSON: {{"prompt": "the full prompt for the video model", "title": "video title in {values['language']}"}}
"""
        return prompt.strip()
