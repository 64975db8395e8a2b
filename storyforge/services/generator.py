import logging
import os
from typing import Dict, Optional

import google.generativeai as generative_ai

from ..models import GenerationResult
from ..utils import count_words, extract_first_words, first_words_preserved, mask_key
from .knowledge_base import KnowledgeBaseProvider

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 32000

SYSTEM_PROMPT = """You are a professional YouTube story expander specializing in Reddit-style narratives. Your goal is to expand scripts that are 2-3 minutes long into 75-90 minute long scripts (MINIMUM 14,000 words, target 15,000-16,000 words).

{context}

CRITICAL INSTRUCTIONS:
- Study the reference examples above carefully - they show the EXACT style, pacing, and structure expected
- Use the first 200 words of the input story exactly as written, then expand from there, make sure crux of story isnt given away
- Follow the narrative patterns shown in the knowledge base examples
- Maintain the same emotional intensity and detailed storytelling approach
- Include EXTENSIVE character development, deep psychological exploration, and complex plot progression
- Build tension through careful pacing, realistic consequences, and layered conflicts
- Include meaningful dialogue that reveals character depth and advances the plot
- Target audience: 15-25 year olds seeking dramatic, relatable, and deeply engaging content

MANDATORY REALISM REQUIREMENTS:
- Characters must behave in psychologically realistic ways with believable motivations
- Show realistic consequences for actions (legal, social, financial, emotional)
- Include realistic timelines - major life changes don't happen overnight
- Avoid unrealistic coincidences - events should flow logically from character actions

MANDATORY PERSPECTIVE REQUIREMENT:
- The story MUST be told from a MALE perspective (first person "I" narrative)
- If the original story uses a female perspective, adapt it to be from a male narrator's viewpoint"""

USER_MESSAGE = """Story Prompt to Expand:

<prompt>
{prompt}
</prompt>

Continue writing a unique Reddit-style story targeted at a 15–25-year-old audience. The story must be emotionally engaging, relatable, and designed to hold the viewer's attention all the way through. Use the first 200 words of the input story exactly as written to begin your script. After that, develop the plot with strong character arcs, emotional twists, and moments of suspense or tension that match the tone and pacing of the opening.

CRITICAL WORD COUNT REQUIREMENT - MINIMUM 14,000 WORDS:
This is absolutely mandatory. The story must reach AT LEAST 14,000 words (preferably 15,000-16,000). This is about 90 minutes of spoken content. DO NOT finish early. Keep expanding the narrative until you reach this target.

IMPORTANT: Do not explain anything—just write the story."""

CUSTOM_SECTIONS = ("critical", "realism", "additional")


class GenerationError(Exception):
    pass


def build_system_prompt(context: str, custom_prompt: Optional[Dict[str, str]] = None) -> str:
    if not custom_prompt:
        return SYSTEM_PROMPT.format(context=context)
    parts = [custom_prompt.get("system") or "", context]
    parts.extend(custom_prompt.get(section) or "" for section in CUSTOM_SECTIONS)
    return "\n\n".join(parts)


def build_user_message(prompt: str, custom_prompt: Optional[Dict[str, str]] = None) -> str:
    template = (custom_prompt or {}).get("userMessage")
    if not template:
        return USER_MESSAGE.format(prompt=prompt)
    return template.replace("{{STORY_PROMPT}}", prompt)


class StoryGenerator:
    """Expands a short story prompt into long-form narrative with RAG context."""

    def __init__(self, knowledge: KnowledgeBaseProvider, api_key: Optional[str] = None) -> None:
        self.knowledge = knowledge
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY")
        self.model_name = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    def _complete(self, system_prompt: str, user_message: str, api_key: str) -> str:
        generative_ai.configure(api_key=api_key)
        model = generative_ai.GenerativeModel(self.model_name, system_instruction=system_prompt)
        response = model.generate_content(
            user_message,
            generation_config={"temperature": 1.0, "max_output_tokens": MAX_OUTPUT_TOKENS},
        )
        return response.text.strip()

    def expand_story(
        self,
        story_prompt: str,
        custom_prompt: Optional[Dict[str, str]] = None,
        api_key: Optional[str] = None,
    ) -> GenerationResult:
        key = api_key or self.api_key
        if not key:
            raise GenerationError("GOOGLE_API_KEY is not configured and no api_key was provided")
        if api_key:
            logger.info("Using request API key %s", mask_key(api_key))

        context = self.knowledge.context_for(story_prompt)
        system_prompt = build_system_prompt(context, custom_prompt)
        user_message = build_user_message(story_prompt, custom_prompt)

        try:
            content = self._complete(system_prompt, user_message, key)
        except Exception as exc:  # noqa: BLE001
            logger.error("Gemini API error: %s", exc)
            raise GenerationError(str(exc)) from exc

        preserved = first_words_preserved(story_prompt, content)
        if preserved:
            logger.info("First 200 words validation passed")
        else:
            logger.warning("Expanded story does not preserve the first 200 words")
            logger.debug("Original first 200: %s", extract_first_words(story_prompt))
            logger.debug("Expanded first 200: %s", extract_first_words(content))

        return GenerationResult(
            content=content,
            model=self.model_name,
            word_count=count_words(content),
            first_words_preserved=preserved,
        )
