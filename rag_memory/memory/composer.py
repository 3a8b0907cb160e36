"""
Builds the (system prompt, user content) pair sent to the summarizer.

The user content wraps the target message with optional context blocks:
recent raw chat turns, then previous summaries, then the target message.
"""

import re
from typing import Any, Dict, Optional, Sequence, Tuple

from .schemas import RawTurn, SummaryContext


DEFAULT_WORD_LIMIT = 50
DEFAULT_USER_NAME = "User"
DEFAULT_CHARACTER_NAME = "Character"

_WORDS_PLACEHOLDER = re.compile(r"\{\{words\}\}")
_USER_PLACEHOLDER = re.compile(r"\{\{user\}\}")

_PROMPT_HEADER = """You are a summarization assistant for a roleplay chat.

Your ONLY job is to summarize ONE message into a single, concise but information-rich statement of fact in {language} that will be used as a story log entry.

RULES:
Focus ONLY on story-relevant actions, decisions, emotional beats, and (if present) important worldbuilding details.
Do NOT add new information or speculate.
Do NOT explain your reasoning.
Do NOT talk about the prompt, the task, or summarization itself.
Do NOT copy template text or special tokens.
Do NOT include tags like <think>, <eot_id>, <|begin_of_text|>, etc.

STYLE:
Use simple past tense verbs (said, asked, accepted, felt, realized, introduced, described, etc.).
For long, world building-heavy messages, include:
The name of the place or system,
The key rule or conflict,
{{{{user}}}}'s current role or status,
The immediate hook or situation at the end of the message.
Keep the summary extremely focused but not empty: it should be one dense sentence that a future model can use as a memory.
Do NOT include long verbatim quotes.

LENGTH:
The summary MUST be no more than {{{{words}}}} words.
For short, simple messages, fewer words are fine.
For long, important messages, aim to use most of the {{{{words}}}} allowance."""

DEFAULT_PROMPT_EN = _PROMPT_HEADER.format(language="ENGLISH")

DEFAULT_PROMPT_KO = _PROMPT_HEADER.format(language="KOREAN") + """

OUTPUT FORMAT (EXACT):
`[MM/DD|HH:MM] [Summary in past tense, in Korean]`

EXAMPLES:
[01/22|22:11] {{user}}의 사과를 받아들였지만 감정적으로 거리를 유지했다.
[03/12|04:21] 텔레포트 시나리오에 동의하고 간단한 중세 배경을 요청했다.
[12/02|00:01] Cygnus를 엄격한 길드 기반 세계로 소개하고 {{user}}를 문을 두드리는 후드 쓴 인물로부터 시작되는 길드 없는 'Null'로 설정했다.

Remember:
Summarize ONLY the TARGET message.
Your response must contain ONLY the summary line with timestamp; NOTHING else."""

DEFAULT_LANGUAGE = "ko"


def default_prompts() -> Dict[str, str]:
    """Built-in summarization prompts keyed by language code."""
    return {"en": DEFAULT_PROMPT_EN, "ko": DEFAULT_PROMPT_KO}


def resolve_system_prompt(settings: Any) -> str:
    """
    Pick the prompt template for the current settings.

    Custom prompt wins; otherwise the language default, falling back to Korean.
    """
    custom = getattr(settings, "custom_prompt", "") or ""
    if custom.strip():
        return custom
    prompts = default_prompts()
    return prompts.get(getattr(settings, "language", DEFAULT_LANGUAGE), prompts[DEFAULT_LANGUAGE])


def process_system_prompt(
    template: str,
    word_limit: Optional[int] = None,
    user_name: Optional[str] = None,
) -> str:
    """
    Fill ``{{words}}`` and ``{{user}}`` placeholders.

    Any other ``{{...}}`` text is left as-is.

    Args:
        template: Prompt template
        word_limit: Summary word limit (default 50)
        user_name: Display name of the user (default "User")

    Returns:
        Processed system prompt
    """
    words = str(word_limit or DEFAULT_WORD_LIMIT)
    name = user_name or DEFAULT_USER_NAME

    prompt = _WORDS_PLACEHOLDER.sub(lambda _: words, template or "")
    prompt = _USER_PLACEHOLDER.sub(lambda _: name, prompt)
    return prompt


def format_user_content(
    message: str,
    role: Optional[str] = None,
    user_name: Optional[str] = None,
    character_name: Optional[str] = None,
    summary_history: Optional[Sequence[str]] = None,
    raw_history: Optional[Sequence[RawTurn]] = None,
) -> str:
    """
    Assemble the user message for the summarization call.

    Block order is fixed: raw history, previous summaries, target message.
    Missing optional inputs drop their block; the target block is always last.

    Args:
        message: Turn to summarize
        role: 'user' or 'assistant'; adds a speaker prefix when set
        user_name: Name used for the user speaker
        character_name: Name used for the non-user speaker
        summary_history: Previous summaries, oldest first
        raw_history: Previous chat turns, oldest first

    Returns:
        Formatted content
    """
    content = ""

    if raw_history:
        content += "=== RECENT CHAT HISTORY (for context only) ===\n"
        for turn in raw_history:
            content += f"[{turn.name}]: {turn.content}\n"
        content += "=== END OF CHAT HISTORY ===\n\n"

    if summary_history:
        content += "=== PREVIOUS SUMMARIES (for style reference) ===\n"
        content += "\n".join(summary_history)
        content += "\n=== END OF SUMMARIES ===\n\n"

    content += "=== TARGET MESSAGE TO SUMMARIZE ===\n"

    if role:
        if role == "user":
            speaker = user_name or DEFAULT_USER_NAME
        else:
            speaker = character_name or DEFAULT_CHARACTER_NAME
        content += f"[{speaker}]: "

    content += message
    content += "\n=== END OF TARGET MESSAGE ==="

    return content


class SummaryComposer:
    """Turns a message plus SummaryContext into a summarization request."""

    def __init__(self, template: Optional[str] = None, word_limit: int = DEFAULT_WORD_LIMIT):
        self.template = template or DEFAULT_PROMPT_KO
        self.word_limit = word_limit

    def compose(self, message: str, context: Optional[SummaryContext] = None) -> Tuple[str, str]:
        """
        Build the summarization payload.

        Returns:
            (system_prompt, user_content)
        """
        context = context or SummaryContext()

        system_prompt = process_system_prompt(
            self.template,
            word_limit=context.word_limit or self.word_limit,
            user_name=context.user_name,
        )
        user_content = format_user_content(
            message,
            role=context.role,
            user_name=context.user_name,
            character_name=context.character_name,
            summary_history=context.summary_history,
            raw_history=context.raw_history,
        )
        return system_prompt, user_content


def truncate_summary(text: Optional[str], max_length: int = 200) -> str:
    """
    Shorten text without an LLM, preferring sentence then word boundaries.

    Args:
        text: Text to shorten
        max_length: Maximum characters kept before the ellipsis

    Returns:
        Truncated text
    """
    if not text or len(text) <= max_length:
        return text or ""

    truncated = text[:max_length]
    last_sentence = max(truncated.rfind("."), truncated.rfind("?"), truncated.rfind("!"))

    if last_sentence > max_length * 0.5:
        return truncated[:last_sentence + 1]

    last_space = truncated.rfind(" ")
    if last_space > 0:
        return truncated[:last_space] + "..."

    return truncated + "..."
