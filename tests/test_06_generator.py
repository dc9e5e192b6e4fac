"""
Tests for line generation: output cleaning, opener variety and the
OpenAI-backed generator (with a stand-in client).
"""

from types import SimpleNamespace

import pytest
from openai import OpenAIError

from affirm_ms.content.generator import (
    OpenAILineGenerator,
    build_prompt,
    clean_generated_lines,
    opener,
    vary_openers,
)
from affirm_ms.core.errors import GenerationUnavailable


def fake_client(content=None, error=None):
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        if error is not None:
            raise error
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return client, calls


class TestCleanGeneratedLines:
    def test_numbering_and_quotes_stripped(self):
        raw = '1. "I am calm"\n2) I rest now\n- My mind is quiet\n• I let go'
        assert clean_generated_lines(raw) == ["I am calm", "I rest now", "My mind is quiet", "I let go"]

    def test_non_first_person_dropped(self):
        assert clean_generated_lines(["You are safe", "We rest", "I am safe"]) == ["I am safe"]

    def test_future_tense_dropped(self):
        assert clean_generated_lines(["I will be calm", "I am going to rest", "I rest"]) == ["I rest"]

    def test_long_lines_dropped(self):
        long_line = "I am " + " ".join(["very"] * 12) + " calm"
        assert clean_generated_lines([long_line, "I am calm"], max_words=12) == ["I am calm"]

    def test_platitudes_dropped(self):
        assert clean_generated_lines(["I know everything happens for a reason", "I am here"]) == ["I am here"]

    def test_duplicates_removed(self):
        assert clean_generated_lines(["I am calm.", "i am calm", "I am CALM!"]) == ["I am calm."]

    def test_blank_lines_ignored(self):
        assert clean_generated_lines("\n\nI am calm\n   \n") == ["I am calm"]


class TestOpeners:
    def test_i_am_is_its_own_opener(self):
        assert opener("I am calm") == "i am"
        assert opener("I rest") == "i"
        assert opener("My breath") == "my"
        assert opener("") == ""

    def test_no_three_in_a_row(self):
        lines = ["I am a", "I am b", "I am c", "My d", "I e"]
        result = vary_openers(lines)
        assert sorted(result) == sorted(lines)
        openers = [opener(x) for x in result]
        for i in range(len(openers) - 2):
            assert not (openers[i] == openers[i + 1] == openers[i + 2])

    def test_unplaceable_lines_appended(self):
        lines = ["I am a", "I am b", "I am c"]
        assert vary_openers(lines) == lines


class TestPrompt:
    def test_prompt_mentions_inputs(self):
        prompt = build_prompt("sleep", "racing thoughts", 4, 12, ["rest", "night"])
        assert "Write 4" in prompt
        assert "racing thoughts" in prompt
        assert "rest, night" in prompt
        assert "at most 12 words" in prompt


class TestOpenAILineGenerator:
    def test_generate_cleans_output(self):
        client, calls = fake_client("1. I am calm\n2. You are great\n3. My breath is slow")
        gen = OpenAILineGenerator(api_key="sk-test", model="gpt-test", client=client)

        lines = gen.generate("sleep", "rest", 3, ["rest"])

        assert lines == ["I am calm", "My breath is slow"]
        assert calls[0]["model"] == "gpt-test"
        assert calls[0]["messages"][0]["role"] == "user"

    def test_extract_themes(self):
        client, _ = fake_client("Anxiety, sleep ,peace,rest, two words")
        gen = OpenAILineGenerator(api_key="sk-test", client=client)
        assert gen.extract_themes("worried at night") == ["anxiety", "sleep", "peace", "rest"]

    def test_empty_themes_fall_back_to_keywords(self):
        client, _ = fake_client("")
        gen = OpenAILineGenerator(api_key="sk-test", client=client)
        assert gen.extract_themes("can't stop thinking about work") == ["stop", "thinking", "work"]

    def test_api_error_becomes_generation_unavailable(self):
        client, _ = fake_client(error=OpenAIError("rate limited"))
        gen = OpenAILineGenerator(api_key="sk-test", client=client)
        with pytest.raises(GenerationUnavailable) as exc_info:
            gen.generate("focus", "deep work", 3, [])
        assert exc_info.value.code == "GENERATION_UNAVAILABLE"

    def test_none_content_is_empty(self):
        client, _ = fake_client(None)
        gen = OpenAILineGenerator(api_key="sk-test", client=client)
        assert gen.generate("calm", "peace", 2, []) == []
