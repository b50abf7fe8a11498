"""Chat completion wrapper shared by the idea and prompt generators"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional

import openai
from dotenv import load_dotenv

# API keys and per-kind model overrides live in .env.local
load_dotenv(dotenv_path=os.path.join(os.getcwd(), ".env.local"))

# kind -> env var overriding the configured model
MODEL_ENV_VARS = {
    "ideas": "IDEAS_OPENAI_MODEL",
    "prompt": "PROMPT_OPENAI_MODEL",
}

_clients: Dict[str, openai.OpenAI] = {}


def model_for(kind: str, default: str) -> str:
    return os.getenv(MODEL_ENV_VARS.get(kind, "GEN_OPENAI_MODEL"), default)


def shared_openai_client(api_key_env: str = "OPENAI_API_KEY") -> openai.OpenAI:
    """One OpenAI client per key, created on first use"""
    if api_key_env not in _clients:
        api_key = os.getenv(api_key_env)
        if not api_key:
            raise RuntimeError(f"{api_key_env} missing (set it in .env.local)")
        _clients[api_key_env] = openai.OpenAI(api_key=api_key)
    return _clients[api_key_env]


class ChatCompletionClient:
    """Calls a local (Ollama) or OpenAI chat model and parses JSON replies"""

    def __init__(self, llm_config, kind: str = "gen", client=None):
        self.logger = logging.getLogger("autopilot.llm")

        self.use_local_llm = llm_config.use_local_llm
        self.model_name = llm_config.model_name
        self.temperature = llm_config.temperature
        self.max_tokens_default = llm_config.max_tokens

        if client is not None:
            self.client = client
        elif self.use_local_llm:
            # Local LLMs don't need API keys
            self.client = openai.OpenAI(base_url=llm_config.local_llm_url, api_key="not-needed")
            self.logger.info(f"Using local LLM: {self.model_name} at {llm_config.local_llm_url}")
        else:
            self.client = shared_openai_client(llm_config.api_key_env)
            self.model_name = model_for(kind, self.model_name)
            self.logger.info(f"Using OpenAI API for {kind} (model={self.model_name})")

    async def complete_json(self, system_prompt: str, prompt: str,
                            max_tokens: Optional[int] = None) -> Any:
        """Run a JSON-mode completion and return the decoded payload"""
        kwargs = dict(
            model=self.model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            max_tokens=max_tokens or self.max_tokens_default,
            temperature=self.temperature,
        )
        if not self.use_local_llm:
            kwargs["response_format"] = {"type": "json_object"}

        # The SDK client is synchronous; keep the event loop free while it waits
        response = await asyncio.to_thread(self.client.chat.completions.create, **kwargs)
        content = response.choices[0].message.content or ""
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            self.logger.warning(f"LLM reply was not valid JSON: {content[:200]!r}")
            return content
