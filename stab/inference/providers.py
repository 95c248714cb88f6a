"""
stab.inference.providers — Categorization service clients.

Each builder takes the process ``Config`` and the user's credential and
returns an ``LLMFunc``: ``(prompt, system) -> str``.  The SDKs are
optional and imported only when their provider is selected.

=============  ===================================  =====================
provider       endpoint                             credential
=============  ===================================  =====================
``anthropic``  Messages API                         API key
``openai``     Chat Completions (JSON mode)         API key
``ollama``     ``/api/generate`` over httpx         optional bearer token
=============  ===================================  =====================
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any, Callable, Dict

from stab.core.types import LLMFunc

if TYPE_CHECKING:
    from stab.core.config import Config

OLLAMA_DEFAULT_URL = "http://localhost:11434"


def _missing(package: str, provider: str) -> ImportError:
    return ImportError(
        f"The {provider!r} categorization provider needs the {package} package "
        f"(pip install 'stab[{package}]')"
    )


def anthropic_categorizer(config: Config, credential: str) -> LLMFunc:
    try:
        import anthropic
    except ImportError as exc:
        raise _missing("anthropic", "anthropic") from exc

    options: Dict[str, Any] = {
        "api_key": credential or os.environ.get("ANTHROPIC_API_KEY", ""),
        "timeout": config.llm_timeout,
    }
    if config.llm_base_url:
        options["base_url"] = config.llm_base_url
    client = anthropic.Anthropic(**options)

    def categorize(prompt: str, system: str = "") -> str:
        request: Dict[str, Any] = {
            "model": config.llm_model,
            "max_tokens": config.llm_max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system
        message = client.messages.create(**request)
        return "".join(getattr(block, "text", "") for block in message.content).strip()

    return categorize


def openai_categorizer(config: Config, credential: str) -> LLMFunc:
    try:
        import openai
    except ImportError as exc:
        raise _missing("openai", "openai") from exc

    options: Dict[str, Any] = {
        "api_key": credential or os.environ.get("OPENAI_API_KEY", ""),
        "timeout": config.llm_timeout,
    }
    if config.llm_base_url:
        options["base_url"] = config.llm_base_url
    client = openai.OpenAI(**options)

    def categorize(prompt: str, system: str = "") -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        completion = client.chat.completions.create(
            model=config.llm_model,
            messages=messages,
            max_tokens=config.llm_max_tokens,
            response_format={"type": "json_object"},
        )
        if not completion.choices:
            raise ValueError("Categorization service returned no choices")
        return (completion.choices[0].message.content or "").strip()

    return categorize


def ollama_categorizer(config: Config, credential: str) -> LLMFunc:
    import httpx

    headers = {"Authorization": f"Bearer {credential}"} if credential else {}
    client = httpx.Client(
        base_url=(config.llm_base_url or OLLAMA_DEFAULT_URL).rstrip("/"),
        headers=headers,
        timeout=config.llm_timeout,
    )

    def categorize(prompt: str, system: str = "") -> str:
        body: Dict[str, Any] = {
            "model": config.llm_model,
            "prompt": prompt,
            "format": "json",
            "stream": False,
            "options": {"num_predict": config.llm_max_tokens},
        }
        if system:
            body["system"] = system
        response = client.post("/api/generate", json=body)
        response.raise_for_status()
        try:
            return str(response.json().get("response", "")).strip()
        except ValueError as exc:
            raise ValueError(
                f"Categorization service sent a non-JSON body ({response.status_code})"
            ) from exc

    return categorize


PROVIDERS: Dict[str, Callable[["Config", str], LLMFunc]] = {
    "anthropic": anthropic_categorizer,
    "openai": openai_categorizer,
    "ollama": ollama_categorizer,
}


def build_categorizer(config: Config, credential: str) -> LLMFunc:
    """The categorizer for ``config.llm_provider``, authenticated with *credential*."""
    if config.llm_func is not None:
        return config.llm_func
    provider = config.llm_provider.lower()
    if provider == "custom":
        raise ValueError("llm_provider is 'custom' but no llm_func was provided")
    try:
        builder = PROVIDERS[provider]
    except KeyError:
        raise ValueError(
            f"Unknown llm_provider: {config.llm_provider!r} "
            f"(expected one of {', '.join(sorted(PROVIDERS))} or 'custom')"
        ) from None
    return builder(config, credential)
