# codemind/core/prompt_engine.py
import html
from typing import List, Optional
from loguru import logger

from .models import PromptItem, PromptItemType
from .token_counter import DEFAULT_ENCODING, count_prompt_tokens

PROMPT_HEADER = "I need help understanding and modifying this code."


class PromptEngine:
    """Renders the prompt basket collected while exploring."""

    def __init__(self, max_tokens: Optional[int] = None, encoding_name: str = DEFAULT_ENCODING):
        self.max_tokens = max_tokens
        self.encoding_name = encoding_name

    @staticmethod
    def _of_type(items: List[PromptItem], item_type: PromptItemType) -> List[PromptItem]:
        return [item for item in items if item.type is item_type]

    def build_prompt(self, items: List[PromptItem]) -> str:
        """Plain-text prompt: context, code snippets, then questions/comments."""
        prompt = f"{PROMPT_HEADER}\n\n"

        context_items = self._of_type(items, PromptItemType.CONTEXT)
        if context_items:
            prompt += "CONTEXT:\n" + "\n".join(f"- {i.content}" for i in context_items) + "\n\n"

        code_items = self._of_type(items, PromptItemType.CODE)
        if code_items:
            prompt += "RELEVANT CODE SNIPPETS:\n"
            for item in code_items:
                prompt += f"\n// {item.title}\n{item.content}\n"

        comments = self._of_type(items, PromptItemType.COMMENT)
        if comments:
            prompt += "\nMY QUESTIONS/COMMENTS:\n"
            for item in comments:
                prompt += f"- {item.content}\n"

        return prompt

    def build_prompt_xml(self, items: List[PromptItem]) -> str:
        """Same basket as an <instructions>/<context> document."""
        lines = ["<instructions>", f"    {html.escape(PROMPT_HEADER)}"]
        context_items = self._of_type(items, PromptItemType.CONTEXT)
        if context_items:
            lines.append("    <goals>")
            lines.extend(f"        <goal>{html.escape(i.content)}</goal>" for i in context_items)
            lines.append("    </goals>")
        comments = self._of_type(items, PromptItemType.COMMENT)
        if comments:
            lines.append("    <questions>")
            lines.extend(f"        <question>{html.escape(i.content)}</question>" for i in comments)
            lines.append("    </questions>")
        lines.append("</instructions>")

        lines.append("<context>")
        for item in self._of_type(items, PromptItemType.CODE):
            safe_title = html.escape(item.title, quote=True)
            lines.append(f"    <snippet title='{safe_title}'>")
            lines.append(html.escape(item.content))
            lines.append("    </snippet>")
        lines.append("</context>")
        logger.debug(f"Generated prompt XML with {len(lines)} lines.")
        return "\n".join(lines)

    def token_report(self, items: List[PromptItem]) -> str:
        total = count_prompt_tokens(items, self.encoding_name)
        if self.max_tokens:
            status = " (over budget)" if total > self.max_tokens else ""
            return f"{total}/{self.max_tokens} tokens{status}"
        return f"{total} tokens"
