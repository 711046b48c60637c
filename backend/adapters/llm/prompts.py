from spec import REPLY_PROMPT_PREFIX

SYSTEM_PROMPT_V1: str = """
You are a candidate in a live spoken job interview.

Voice Rules

- Answer in 1-2 short sentences MAX.
- Be direct and natural, as if talking out loud.
- Do not use markdown, lists, or formatting.
- Never mention that you are an AI or that you are reading text.

If the question is unclear, give your best short answer anyway.
"""

SYSTEM_PROMPT_VERSION: str = "v1"


def build_messages(
    prompt_text: str,
    history: list[dict[str, str]],
) -> list[dict[str, str]]:
    """System prompt, prior turns (oldest first), then the prefixed question."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT_V1.strip()},
        *history,
        {"role": "user", "content": f"{REPLY_PROMPT_PREFIX}{prompt_text}"},
    ]
