"""Data models for idea and prompt generation"""

from pydantic import BaseModel


class Idea(BaseModel):
    """A candidate video idea"""
    title: str
    description: str = ""

    def as_text(self) -> str:
        """Idea text as stored on a job"""
        return f"{self.title}: {self.description}"


class PromptResult(BaseModel):
    """Render prompt and display title produced for an idea"""
    render_prompt: str
    display_title: str


class ProviderError(Exception):
    """The idea/prompt provider failed or returned an unusable reply"""
