"""LLM API client wrapper. Supports Anthropic and OpenAI-compatible APIs."""
import json

from ..config import Settings


def _clean_surrogates(s: str) -> str:
    """Replace lone surrogate characters (e.g. \\udca0) that are invalid in UTF-8."""
    return s.encode("utf-8", errors="replace").decode("utf-8")


def call_llm(prompt: str, settings: Settings, system: str = None) -> str:
    """Call the configured LLM provider and return the response text.

    Provider, model and base URL come from settings; API keys are read by the
    SDKs themselves (OPENAI_API_KEY / ANTHROPIC_API_KEY).
    """
    prompt = _clean_surrogates(prompt)
    if system:
        system = _clean_surrogates(system)
    provider = settings.question_llm_provider

    if provider == "openai":
        import openai
        kwargs = {}
        if settings.question_llm_base_url:
            kwargs["base_url"] = settings.question_llm_base_url
        client = openai.OpenAI(**kwargs)
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        resp = client.chat.completions.create(
            model=settings.question_llm_model,
            max_tokens=4096,
            messages=messages,
        )
        return resp.choices[0].message.content
    elif provider == "anthropic":
        import anthropic
        client = anthropic.Anthropic()
        resp = client.messages.create(
            model=settings.question_llm_model or "claude-sonnet-4-20250514",
            max_tokens=4096,
            system=system or "",
            messages=[{"role": "user", "content": prompt}],
        )
        return resp.content[0].text
    else:
        raise ValueError(f"Unsupported provider: {provider}")


def call_llm_json(prompt: str, settings: Settings, system: str = None):
    """Call LLM and parse response as JSON. Strips markdown code fences if present."""
    text = call_llm(prompt, settings, system).strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]  # remove opening fence
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return json.loads(text)
