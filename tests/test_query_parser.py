from datetime import datetime

import pytest

from desksearch.core import QueryParser
from desksearch.models import DateRange, TicketStatus


NOW = datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture
def parser():
    return QueryParser(clock=lambda: NOW)


def test_parse_simple_query(parser):
    result = parser.parse("refund order")

    assert result.original == "refund order"
    assert result.terms == ["refund", "order"]
    assert result.phrases == []
    assert result.operators == {}
    assert result.cleaned_text == "refund order"


def test_parse_quoted_phrase(parser):
    result = parser.parse('"payment failed" card')

    assert result.phrases == ["payment failed"]
    assert result.terms == ["card"]
    assert result.search_terms == ["payment failed", "card"]


def test_parse_quoted_single_word_is_a_phrase(parser):
    """A quoted word stays a phrase, so it never gets typo or phonetic matching.

    It is still searched like a bare term: ``search_terms`` holds it.
    """
    result = parser.parse('"refund" after:7days status:open')

    assert result.phrases == ["refund"]
    assert result.terms == []
    assert result.search_terms == ["refund"]
    assert result.operators == {"after": datetime(2024, 3, 8), "status": int(TicketStatus.ACTIVE)}


def test_parse_status_and_assigned_operators(parser):
    result = parser.parse("refund status:open assigned:me")

    assert result.operators["status"] == int(TicketStatus.ACTIVE)
    assert result.operators["assigned"] == "me"
    assert result.terms == ["refund"]
    assert "status:" not in result.cleaned_text
    assert "assigned:" not in result.cleaned_text


def test_parse_is_case_insensitive_for_keywords(parser):
    result = parser.parse("STATUS:Closed Has:Attachment")

    assert result.operators["status"] == int(TicketStatus.CLOSED)
    assert result.operators["has_attachment"] is True
    assert result.terms == []


def test_parse_from_and_to_keep_raw_value(parser):
    result = parser.parse("from:john@x.com to:billing")

    assert result.operators["from"] == "john@x.com"
    assert result.operators["to"] == "billing"
    assert result.cleaned_text == ""


def test_parse_assigned_numeric_and_unassigned(parser):
    assert parser.parse("assigned:42").operators["assigned"] == 42
    assert parser.parse("assigned:unassigned").operators["assigned"] == "unassigned"
    assert "assigned" not in parser.parse("assigned:bob").operators


def test_parse_drops_invalid_operator_values(parser):
    result = parser.parse("status:whatever after:notadate has:pets refund")

    assert result.operators == {}
    assert result.terms == ["refund"]
    assert result.cleaned_text == "refund"


def test_parse_after_before_give_day_bounds(parser):
    result = parser.parse("after:2024-03-01 before:2024-03-10")

    assert result.operators["after"] == datetime(2024, 3, 1, 0, 0, 0)
    assert result.operators["before"].date() == datetime(2024, 3, 10).date()
    assert result.operators["before"].hour == 23


def test_last_weekday_equals_after_and_before_same_day(parser):
    last = parser.parse("last:friday").operators["last"]
    bounds = parser.parse("after:2024-03-08 before:2024-03-08").operators

    assert isinstance(last, DateRange)
    assert last.start == bounds["after"]
    assert last.end == bounds["before"]


def test_last_relative_runs_until_today(parser):
    last = parser.parse("last:7days").operators["last"]

    assert last.start == datetime(2024, 3, 8, 0, 0, 0)
    assert last.end.date() == NOW.date()


def test_unknown_prefix_is_kept_as_text(parser):
    result = parser.parse("priority:high")

    assert result.operators == {}
    assert result.terms == ["priority:high"]


def test_later_operator_overwrites_earlier(parser):
    result = parser.parse("status:open status:closed")

    assert result.operators["status"] == int(TicketStatus.CLOSED)


@pytest.mark.parametrize("query", ["", "   ", '"', '""', "status:", ":::", "after:", '"unterminated phrase'])
def test_parse_never_raises(parser, query):
    result = parser.parse(query)

    assert result.original == query
    assert isinstance(result.terms, list)


def test_operators_never_leak_into_cleaned_text(parser):
    query = 'before:yesterday "late delivery" from:bob@shop.io has:attachments parcel'
    result = parser.parse(query)

    for keyword in ("before:", "from:", "has:"):
        assert keyword not in result.cleaned_text
    assert result.phrases == ["late delivery"]
    assert result.terms == ["parcel"]
