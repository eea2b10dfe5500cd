"""Default system prompt for the ask feature."""

from __future__ import annotations

DEFAULT_TEMPLATE = """You are a helpful assistant answering questions about what the user is working on.

Answer directly and concisely. When a screenshot is attached, use what is visible on screen as context. Use the conversation transcript below when it is relevant to the question.

<conversation_history>
{history}
</conversation_history>"""


class TemplatePromptBuilder:
    """PromptBuilder that fills {history} in a fixed template."""

    def __init__(self, template: str = DEFAULT_TEMPLATE):
        self.template = template

    def build(self, history_text: str) -> str:
        return self.template.replace("{history}", history_text)
