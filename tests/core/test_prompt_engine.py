# tests/core/test_prompt_engine.py
from codemind.core.models import PromptItem, PromptItemType
from codemind.core.prompt_engine import PROMPT_HEADER, PromptEngine


def _items():
    return [
        PromptItem(id="1", title="Goal", content="Add caching", type=PromptItemType.CONTEXT),
        PromptItem(id="2", title="src/api.ts#fetchUser", content="function fetchUser(id) {}"),
        PromptItem(id="3", title="", content="Why is this slow?", type=PromptItemType.COMMENT),
    ]


def test_plain_prompt_sections_in_order():
    prompt = PromptEngine().build_prompt(_items())
    assert prompt.startswith(PROMPT_HEADER)
    context_at = prompt.index("CONTEXT:\n- Add caching")
    snippets_at = prompt.index("RELEVANT CODE SNIPPETS:\n\n// src/api.ts#fetchUser\nfunction fetchUser(id) {}")
    comments_at = prompt.index("MY QUESTIONS/COMMENTS:\n- Why is this slow?")
    assert context_at < snippets_at < comments_at


def test_empty_sections_are_omitted():
    prompt = PromptEngine().build_prompt([PromptItem(id="1", title="t", content="x = 1")])
    assert "CONTEXT:" not in prompt
    assert "MY QUESTIONS/COMMENTS:" not in prompt
    assert "// t\nx = 1" in prompt


def test_xml_prompt_escapes_content():
    items = _items() + [PromptItem(id="4", title="a<b>", content="if (a < b && c) {}")]
    xml = PromptEngine().build_prompt_xml(items)
    assert "<goal>Add caching</goal>" in xml
    assert "<question>Why is this slow?</question>" in xml
    assert "<snippet title='a&lt;b&gt;'>" in xml
    assert "if (a &lt; b &amp;&amp; c) {}" in xml
    assert xml.index("</instructions>") < xml.index("<context>")


def test_token_report_flags_over_budget(mocker):
    mocker.patch("codemind.core.prompt_engine.count_prompt_tokens", return_value=120)
    assert PromptEngine(max_tokens=100).token_report([]) == "120/100 tokens (over budget)"
    assert PromptEngine().token_report([]) == "120 tokens"
