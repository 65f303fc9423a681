"""Flashcard generation: turn study notes into a structured card via the LLM."""

import logging
from dataclasses import dataclass, field

from backend.config import settings
from backend.errors import GenerationError, ValidationError
from backend.llm_client import LLMClient

logger = logging.getLogger(__name__)

CARD_SYSTEM_PROMPT = """\
You are a study assistant that distils learning material into flashcards.

Rules:
- The core point must be short and easy to memorise
- The confusion point names what learners most often mix up or get wrong
- The example is a representative exercise or application
- Difficulty is an integer from 1 (trivial) to 5 (very hard)
- Tags help group related cards"""

CARD_USER_PROMPT = """\
Turn the following material into a single flashcard.

Material:
{text}

Subject: {subject}

Return ONLY a JSON object with these keys:
- "title": short title for the exam point
- "subject": subject area
- "core_point": the key fact or rule
- "confusion_point": common confusion or mistake
- "example": a typical example or exercise
- "difficulty": integer 1-5
- "tags": array of short strings"""

SKETCH_USER_PROMPT = """\
Describe a simple line drawing (stick figures, arrows, basic shapes) that would help \
someone remember this point:

{core_point}

Reply with the description only, in one or two sentences."""


@dataclass
class CardDraft:
    """Card content produced by the generator, not yet saved."""

    title: str
    subject: str
    core_point: str
    confusion_point: str | None = None
    example: str | None = None
    difficulty: int = 3
    tags: list[str] = field(default_factory=list)
    sketch_prompt: str | None = None


def _clean_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clamp_difficulty(value: object) -> int:
    try:
        difficulty = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return 3
    return max(1, min(5, difficulty))


def parse_card_draft(data: dict, fallback_subject: str) -> CardDraft:
    """Validate the model's JSON and coerce it into a CardDraft."""
    title = _clean_text(data.get("title"))
    core_point = _clean_text(data.get("core_point") or data.get("corePoint"))
    if not title or not core_point:
        raise GenerationError("Generated card is missing a title or core point")

    raw_tags = data.get("tags") or []
    if isinstance(raw_tags, str):
        raw_tags = raw_tags.split(",")
    tags = [t for t in (_clean_text(tag) for tag in raw_tags) if t]

    return CardDraft(
        title=title,
        subject=_clean_text(data.get("subject")) or fallback_subject,
        core_point=core_point,
        confusion_point=_clean_text(data.get("confusion_point") or data.get("confusionPoint")),
        example=_clean_text(data.get("example")),
        difficulty=_clamp_difficulty(data.get("difficulty")),
        tags=tags,
    )


class CardGenerator:
    """Generates flashcards and memory-sketch prompts from free text."""

    def __init__(self, llm: LLMClient) -> None:
        self.llm = llm

    def generate(self, text: str, subject: str | None = None) -> CardDraft:
        """Generate a card draft, including a sketch prompt for its core point."""
        text = (text or "").strip()
        if not text:
            raise ValidationError("Study material must not be empty")
        if len(text) > settings.max_generation_input_chars:
            raise ValidationError(
                f"Study material exceeds {settings.max_generation_input_chars} characters"
            )

        subject = (subject or "").strip() or "general"
        data = self.llm.create_json(
            CARD_USER_PROMPT.format(text=text, subject=subject),
            system=CARD_SYSTEM_PROMPT,
        )
        draft = parse_card_draft(data, fallback_subject=subject)
        draft.sketch_prompt = self.sketch_prompt(draft.core_point)
        logger.info("Generated card %r (%s, difficulty %d)", draft.title, draft.subject, draft.difficulty)
        return draft

    def sketch_prompt(self, core_point: str) -> str:
        reply = self.llm.create_message(SKETCH_USER_PROMPT.format(core_point=core_point), temperature=0.8)
        return reply.strip()
