"""Tests for ballot aggregation."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from pipeline.riksdagen.aggregator import Tally, VoteAggregator
from pipeline.riksdagen.client import Ballot
from riksdagsrosten.models import VoteChoice
from tests.conftest import ballot_item


def _ballot(votering_id: str, intressent_id: str, rost: str, parti: str = "S") -> Ballot:
    return Ballot.from_api_response(ballot_item(votering_id, intressent_id, rost, parti))


def _party_sum(aggregator: VoteAggregator, votering_id: str) -> Tally:
    total = Tally()
    for (_, event_id), tally in aggregator.parties.items():
        if event_id == votering_id:
            total.ja += tally.ja
            total.nej += tally.nej
            total.avstar += tally.avstar
            total.franvarande += tally.franvarande
    return total


class TestAccumulate:
    """Tests for VoteAggregator.accumulate."""

    def test_counts_per_event_and_party(self) -> None:
        aggregator = VoteAggregator()
        aggregator.accumulate(_ballot("V1", "P1", "Ja", "S"), "AU")
        aggregator.accumulate(_ballot("V1", "P2", "Nej", "M"), "AU")
        aggregator.accumulate(_ballot("V1", "P3", "Ja", "S"), "AU")
        aggregator.accumulate(_ballot("V1", "P4", "Frånvarande", "M"), "AU")

        event = aggregator.events["V1"]
        assert (event.ja, event.nej, event.avstar, event.franvarande) == (2, 1, 0, 1)
        assert event.organ == "AU"
        assert aggregator.parties[("S", "V1")].ja == 2
        assert aggregator.parties[("M", "V1")].counts() == {
            "ja": 0,
            "nej": 1,
            "avstar": 0,
            "franvarande": 1,
        }

    def test_repeated_ballot_replaces_contribution(self) -> None:
        aggregator = VoteAggregator()
        assert aggregator.accumulate(_ballot("V1", "P1", "Ja", "S"), "AU") is True
        assert aggregator.accumulate(_ballot("V1", "P1", "Nej", "S"), "AU") is False

        event = aggregator.events["V1"]
        assert event.total == 1
        assert event.nej == 1
        assert aggregator.ballot_count == 1

    def test_replacement_across_parties_keeps_sums(self) -> None:
        aggregator = VoteAggregator()
        aggregator.accumulate(_ballot("V1", "P1", "Ja", "S"), "AU")
        aggregator.accumulate(_ballot("V1", "P1", "Avstår", "V"), "AU")

        assert _party_sum(aggregator, "V1") == Tally(avstar=1)
        assert [row["parti"] for row in aggregator.party_rows()] == ["V"]

    def test_empty_party_uses_unaffiliated_code(self) -> None:
        aggregator = VoteAggregator(unaffiliated_party="-")
        aggregator.accumulate(_ballot("V1", "P1", "Ja", ""), "AU")

        assert ("-", "V1") in aggregator.parties

    def test_party_sums_match_event_totals(self) -> None:
        aggregator = VoteAggregator()
        choices = ["Ja", "Nej", "Avstår", "Frånvarande"]
        parties = ["S", "M", "SD", "", "V"]
        for i in range(40):
            ballot = _ballot(f"V{i % 3}", f"P{i}", choices[i % 4], parties[i % 5])
            aggregator.accumulate(ballot, "FiU")

        for votering_id, event in aggregator.events.items():
            summed = _party_sum(aggregator, votering_id)
            assert summed.counts() == event.counts()
        assert sum(e.total for e in aggregator.events.values()) == 40

    def test_session_fallback_for_missing_rm(self) -> None:
        aggregator = VoteAggregator()
        ballot = Ballot.from_api_response(ballot_item("V1", "P1", "Ja", rm=""))
        aggregator.accumulate(ballot, "AU", session="2023/24")

        assert aggregator.events["V1"].rm == "2023/24"


class TestRows:
    """Tests for row building and flushing."""

    def test_event_rows_carry_decision_date(self) -> None:
        aggregator = VoteAggregator()
        aggregator.accumulate(_ballot("V1", "P1", "Ja"), "AU")

        rows = aggregator.event_rows({"HC01AU10": date(2025, 3, 5)})
        assert rows[0]["datum"] == date(2025, 3, 5)
        assert rows[0]["punkt"] == 1
        assert rows[0]["ja"] == 1

    def test_tally_add_uses_counter_column(self) -> None:
        tally = Tally()
        tally.add(VoteChoice.AVSTAR)
        tally.add(VoteChoice.AVSTAR)
        tally.add(VoteChoice.AVSTAR, -1)
        assert tally.avstar == 1

    @pytest.mark.asyncio
    async def test_flush_writes_events_before_summaries(self) -> None:
        calls: list[str] = []
        store = MagicMock()
        store.decision_dates = AsyncMock(return_value={})

        async def write_events(rows):
            calls.append("events")
            return len(rows)

        async def write_summaries(rows, votering_ids):
            calls.append("summaries")
            return len(rows)

        store.bulk_upsert_voting_events = AsyncMock(side_effect=write_events)
        store.replace_party_summaries = AsyncMock(side_effect=write_summaries)

        aggregator = VoteAggregator()
        aggregator.accumulate(_ballot("V1", "P1", "Ja", "S"), "AU")
        aggregator.accumulate(_ballot("V1", "P2", "Ja", "M"), "AU")

        assert await aggregator.flush(store) == (1, 2)
        assert calls == ["events", "summaries"]
        _, event_ids = store.replace_party_summaries.await_args.args
        assert event_ids == ["V1"]
