from __future__ import annotations

from dataclasses import dataclass

from pagepersona.core.personas import Persona


FORMATTING_REQUIREMENTS = """
CRITICAL FORMATTING REQUIREMENTS:
1. **Structure your response with 3-5 clear sections** using markdown headers (##)
2. **Use short paragraphs** (2-3 sentences maximum)
3. **Include bullet points or numbered lists** where appropriate
4. **Add line breaks between sections** for better readability
5. **Create engaging subheadings** that match your persona's style
6. **Make it scannable** - readers should be able to quickly understand the main points

Content Guidelines:
- Maintain all important information and key facts
- Transform the tone, style, and presentation to match your persona
- Make it engaging and entertaining while keeping it informative
- Keep the transformation between 300-800 words
- Make sure your personality shines through every sentence
- **Most importantly: Break up wall-of-text into digestible, well-organized sections**
""".strip()

# Rough guard for the combined prompt size; 4 characters per token.
PROMPT_WARN_LENGTH = 12000


@dataclass(slots=True)
class PromptComponents:
    system_prompt: str
    user_prompt: str

    @property
    def total_length(self) -> int:
        return len(self.system_prompt) + len(self.user_prompt)

    @property
    def estimated_tokens(self) -> int:
        return -(-self.total_length // 4)


def build_prompt(
    persona: Persona,
    text: str,
    *,
    title: str | None = None,
    word_count: int | None = None,
    from_webpage: bool = True,
) -> PromptComponents:
    system_prompt = f"{persona.system_prompt}\n\n{FORMATTING_REQUIREMENTS}"

    if from_webpage:
        content_type = "webpage content"
        input_section = (
            f"WEBPAGE TITLE: {title or 'Untitled Page'}\n"
            f"WORD COUNT: {word_count if word_count is not None else len(text.split())}\n\n"
            f"CONTENT TO TRANSFORM:\n{text}"
        )
    else:
        content_type = "text content"
        input_section = f"TEXT INPUT:\n{text}"

    user_prompt = (
        f"Please transform the following {content_type} according to your persona:\n\n"
        f"{input_section}\n\n"
        "Transform this content now with your unique style AND proper formatting!"
    )
    return PromptComponents(system_prompt=system_prompt, user_prompt=user_prompt)
