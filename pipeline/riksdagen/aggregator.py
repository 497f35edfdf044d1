"""Aggregate individual ballots into per-event and per-party totals."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from pipeline.riksdagen.client import Ballot
from riksdagsrosten.models import VoteChoice
from riksdagsrosten.store import Store

logger = logging.getLogger(__name__)


@dataclass
class Tally:
    """The four ballot counters."""

    ja: int = 0
    nej: int = 0
    avstar: int = 0
    franvarande: int = 0

    def add(self, choice: VoteChoice, delta: int = 1) -> None:
        column = choice.counter
        setattr(self, column, getattr(self, column) + delta)

    @property
    def total(self) -> int:
        return self.ja + self.nej + self.avstar + self.franvarande

    def counts(self) -> dict[str, int]:
        return {
            "ja": self.ja,
            "nej": self.nej,
            "avstar": self.avstar,
            "franvarande": self.franvarande,
        }


@dataclass
class EventTally(Tally):
    """Counters plus the metadata of one voting event."""

    votering_id: str = ""
    dok_id: str = ""
    punkt: int = 0
    beteckning: str = ""
    rm: str = ""
    organ: str = ""


class VoteAggregator:
    """Accumulates ballots over a whole run, then writes the totals.

    Each (votering_id, intressent_id) pair contributes exactly once: a ballot
    seen again replaces its earlier contribution, so the totals always match
    the set of ballot rows persisted under those keys.
    """

    def __init__(self, unaffiliated_party: str = "-"):
        """Initialize the aggregator.

        Args:
            unaffiliated_party: Party code for ballots cast without a party.
        """
        self.unaffiliated_party = unaffiliated_party
        self.events: dict[str, EventTally] = {}
        self.parties: dict[tuple[str, str], Tally] = {}
        self._ballots: dict[tuple[str, str], tuple[VoteChoice, str]] = {}

    @property
    def ballot_count(self) -> int:
        return len(self._ballots)

    def party_for(self, ballot: Ballot) -> str:
        return ballot.parti or self.unaffiliated_party

    def accumulate(self, ballot: Ballot, organ: str, session: str = "") -> bool:
        """Add one ballot to the event and party totals.

        Args:
            ballot: A main, substantive ballot.
            organ: Committee that wrote the report being voted on.
            session: Session the ballot was requested for, used when the
                ballot omits it.

        Returns:
            True if the ballot key was new, False if it replaced an earlier one.
        """
        key = (ballot.votering_id, ballot.intressent_id)
        party = self.party_for(ballot)

        previous = self._ballots.get(key)
        if previous is not None:
            old_choice, old_party = previous
            self.events[ballot.votering_id].add(old_choice, -1)
            self.parties[(old_party, ballot.votering_id)].add(old_choice, -1)

        event = self.events.get(ballot.votering_id)
        if event is None:
            event = EventTally(
                votering_id=ballot.votering_id,
                dok_id=ballot.dok_id,
                punkt=ballot.punkt,
                beteckning=ballot.beteckning,
                rm=ballot.rm or session,
                organ=organ,
            )
            self.events[ballot.votering_id] = event
        event.add(ballot.rost)

        party_tally = self.parties.setdefault((party, ballot.votering_id), Tally())
        party_tally.add(ballot.rost)

        self._ballots[key] = (ballot.rost, party)
        return previous is None

    def event_rows(self, decision_dates: dict[str, date | None]) -> list[dict[str, Any]]:
        """Rows for `voting_events`, dated by their report's decision day."""
        return [
            {
                "votering_id": event.votering_id,
                "dok_id": event.dok_id,
                "punkt": event.punkt,
                "beteckning": event.beteckning,
                "rm": event.rm,
                "organ": event.organ,
                "datum": decision_dates.get(event.dok_id),
                **event.counts(),
            }
            for event in self.events.values()
        ]

    def party_rows(self) -> list[dict[str, Any]]:
        """Rows for `party_vote_summary`, leaving out tallies emptied by replacement."""
        return [
            {"parti": parti, "votering_id": votering_id, **tally.counts()}
            for (parti, votering_id), tally in self.parties.items()
            if tally.total > 0
        ]

    async def flush(self, store: Store) -> tuple[int, int]:
        """Write every voting event, then every party summary.

        Party summaries reference voting events, so they are written only
        after all events have committed. Each event's summaries replace
        whatever an earlier run stored for it.

        Returns:
            Tuple of (events written, party summaries written).
        """
        decision_dates = await store.decision_dates(e.dok_id for e in self.events.values())
        events = await store.bulk_upsert_voting_events(self.event_rows(decision_dates))
        summaries = await store.replace_party_summaries(
            self.party_rows(), list(self.events)
        )
        logger.info(f"Wrote {events} voting events and {summaries} party summaries")
        return events, summaries
