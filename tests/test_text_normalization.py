import pytest

from decision_sim.text_normalization import normalize_host_line


@pytest.mark.parametrize(
    "raw",
    [
        "What do you do next?",
        "  What do you do next?  \n",
        "Host: What do you do next?",
        "host: What do you do next?",
        "**Host:** What do you do next?",
        "HOST - What do you do next?",
        "The Host: What do you do next?",
        "Host said: What do you do next?",
        '"What do you do next?"',
        "'What do you do next?'",
        "“What do you do next?”",
        "‘What do you do next?’",
        'Host: "What do you do next?"',
        "```\nWhat do you do next?\n```",
        '```text\nHost: "What do you do next?"\n```',
    ],
)
def test_wrapping_artifacts_are_removed(raw):
    assert normalize_host_line(raw) == "What do you do next?"


def test_inner_quotes_survive():
    line = 'The regulator calls: "We need an answer by noon." What do you tell them?'
    assert normalize_host_line(line) == line


def test_separately_quoted_phrases_keep_their_quotes():
    line = '"We need a plan by noon," says legal. "What is yours?"'
    assert normalize_host_line(line) == line
    assert normalize_host_line("Host: " + line) == line


def test_words_starting_with_host_are_not_labels():
    line = "Hostile press coverage is building. How do you respond?"
    assert normalize_host_line(line) == line


def test_empty_and_none():
    assert normalize_host_line(None) == ""
    assert normalize_host_line("   ") == ""
    assert normalize_host_line('""') == ""
