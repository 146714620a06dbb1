import pytest

from eventchat.agents.chat_agent.confirmation import (
    CANCEL, EDIT, PROCEED, UNCLEAR, classify_confirmation, is_cancellation, is_negative, is_refusal, safety_net,
)


@pytest.mark.parametrize("reply", ["yes", "Yes!", "y", "ok", "okay", "sure", "confirm", "proceed",
                                   "go ahead", "Create it.", "yes please", "yeah", "yep"])
def test_affirmative_replies_proceed(reply):
    assert classify_confirmation(reply) == PROCEED


@pytest.mark.parametrize("reply", ["no", "No", "no.", "NO!", "nope", "nah", "n",
                                   "no thanks", "no, that's fine", "nope looks fine"])
def test_declining_to_edit_means_proceed(reply):
    assert classify_confirmation(reply) == PROCEED


@pytest.mark.parametrize("reply", ["no changes", "nothing to change", "no need", "keep it as is"])
def test_no_edit_phrases_proceed(reply):
    assert classify_confirmation(reply) == PROCEED


@pytest.mark.parametrize("reply", ["edit", "I want to change the date", "modify it", "update the venue",
                                   "that's wrong", "no, change the time"])
def test_edit_words_request_edit(reply):
    assert classify_confirmation(reply) == EDIT


@pytest.mark.parametrize("reply", ["cancel", "Cancel.", "never mind", "forget it", "stop", "discard"])
def test_cancel_words_cancel(reply):
    assert classify_confirmation(reply) == CANCEL
    assert is_cancellation(reply)


@pytest.mark.parametrize("reply", ["don't proceed", "please do not proceed", "wait, don't create it yet",
                                   "I don't want to create it", "do not save it", "never confirm this"])
def test_refusing_to_proceed_cancels(reply):
    assert classify_confirmation(reply) == CANCEL
    assert is_refusal(reply)


@pytest.mark.parametrize("reply", ["wait, proceed?", "hold on, create it?", "not yet, go ahead later"])
def test_hesitant_proceed_goes_to_the_ai_tier(reply):
    assert classify_confirmation(reply) == UNCLEAR


@pytest.mark.parametrize("reply", ["", "hmm", "what about tomorrow?", "maybe later perhaps"])
def test_everything_else_is_unclear(reply):
    assert classify_confirmation(reply) == UNCLEAR


def test_negative_prefix_checked_on_raw_text():
    assert is_negative("no, all set")
    assert is_negative("nope ")
    assert not is_negative("nobody")
    assert not is_negative("notable")


def test_safety_net_treats_not_and_negatives_as_proceed():
    assert safety_net("not") == PROCEED
    assert safety_net("nah") == PROCEED
    assert safety_net("hmm") == UNCLEAR
