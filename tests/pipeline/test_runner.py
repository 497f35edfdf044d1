"""Tests for the stage registry, pipeline driver and CLI."""

import argparse
import asyncio

import pytest

from pipeline.cli import _split_stage_names, main
from pipeline.riksdagen.client import RiksdagenClient
from pipeline.riksdagen.stage import StageResult
from pipeline.runner import STAGES, Stage, resolve_stages, run_pipeline, run_stage
from riksdagsrosten.config import Settings
from riksdagsrosten.models import Member, Motion, VotingEvent
from riksdagsrosten.store import Store
from tests.conftest import (
    SESSION,
    FakeRiksdagen,
    ballot_item,
    document_item,
    person_item,
)


def _recording_registry(calls: list[str], failing: str | None = None) -> dict[str, Stage]:
    def make(name: str) -> Stage:
        async def run(store, client, settings) -> StageResult:
            calls.append(name)
            result = StageResult(stage=name)
            if name == failing:
                return result.fail("boom")
            return result.complete()

        return Stage(name, f"stage {name}", run)

    return {name: make(name) for name in ("first", "second", "third")}


class TestResolveStages:
    """Tests for stage selection."""

    def test_registry_order(self) -> None:
        names = [stage.name for stage in resolve_stages()]
        assert names == ["members", "documents", "motions", "votes", "proposals", "link"]

    def test_subset_keeps_registry_order(self) -> None:
        names = [stage.name for stage in resolve_stages(["link", "members"])]
        assert names == ["members", "link"]

    def test_unknown_stage(self) -> None:
        with pytest.raises(ValueError, match="nope"):
            resolve_stages(["nope"])


class TestRunPipeline:
    """Tests for the sequential driver."""

    @pytest.mark.asyncio
    async def test_runs_all_stages(
        self, settings: Settings, store: Store, client: RiksdagenClient
    ) -> None:
        calls: list[str] = []
        code = await run_pipeline(
            settings, store=store, client=client, registry=_recording_registry(calls)
        )

        assert code == 0
        assert calls == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_aborts_on_first_failure(
        self, settings: Settings, store: Store, client: RiksdagenClient
    ) -> None:
        calls: list[str] = []
        code = await run_pipeline(
            settings,
            store=store,
            client=client,
            registry=_recording_registry(calls, failing="second"),
        )

        assert code == 1
        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_only_subset(
        self, settings: Settings, store: Store, client: RiksdagenClient
    ) -> None:
        calls: list[str] = []
        code = await run_pipeline(
            settings,
            only=["third"],
            store=store,
            client=client,
            registry=_recording_registry(calls),
        )

        assert code == 0
        assert calls == ["third"]

    @pytest.mark.asyncio
    async def test_stage_timeout_fails(
        self, settings: Settings, store: Store, client: RiksdagenClient
    ) -> None:
        async def slow(store, client, settings) -> StageResult:
            await asyncio.sleep(5)
            return StageResult(stage="slow").complete()

        fast_settings = settings.model_copy(update={"stage_timeout_seconds": 0.01})
        code = await run_pipeline(
            fast_settings,
            store=store,
            client=client,
            registry={"slow": Stage("slow", "sleeps", slow)},
        )

        assert code == 1

    @pytest.mark.asyncio
    async def test_run_single_stage(
        self,
        settings: Settings,
        store: Store,
        client: RiksdagenClient,
        fake_api: FakeRiksdagen,
    ) -> None:
        fake_api.members = [person_item("P1"), person_item("P2")]

        code = await run_stage("members", settings, store=store, client=client)

        assert code == 0
        assert await store.count(Member) == 2

    @pytest.mark.asyncio
    async def test_full_pipeline(
        self,
        settings: Settings,
        store: Store,
        client: RiksdagenClient,
        fake_api: FakeRiksdagen,
    ) -> None:
        fake_api.members = [person_item("P1", parti="S"), person_item("P2", parti="M")]
        fake_api.documents[("bet", SESSION)] = [[document_item("HC01AU10", "AU10")]]
        fake_api.documents[("mot", SESSION)] = [
            [document_item("HC02123", "A123", doktyp="mot", organ="")]
        ]
        fake_api.ballots[(SESSION, "AU10")] = [
            ballot_item("ABC-1", "P1", "Ja", "S"),
            ballot_item("ABC-1", "P2", "Nej", "M"),
        ]
        fake_api.statuses["HC01AU10"] = {
            "dokument": {"dok_id": "HC01AU10", "doktyp": "bet"},
            "dokutskottsforslag": {
                "utskottsforslag": {"punkt": "1", "rubrik": "Arbetsrätt", "votering_id": "abc-1"}
            },
        }
        fake_api.statuses["HC02123"] = {
            "dokument": {"dok_id": "HC02123", "doktyp": "mot"},
            "dokintressent": {
                "intressent": {"intressent_id": "P1", "namn": "Anna", "partibet": "S", "roll": "undertecknare"}
            },
            "dokreferens": {"referens": {"ref_dok_id": "HC01AU10", "referenstyp": "behandlas_i"}},
        }

        code = await run_pipeline(settings, store=store, client=client)

        assert code == 0
        async with store.session_maker() as session:
            event = await session.get(VotingEvent, "ABC-1")
            motion = await session.get(Motion, "HC02123")
        assert (event.ja, event.nej) == (1, 1)
        assert event.rubrik == "Arbetsrätt"
        assert motion.parti == "S"
        assert motion.behandlas_i == "HC01AU10"


class TestCli:
    """Tests for command-line parsing."""

    def test_stage_registry_has_cli_names(self) -> None:
        assert set(STAGES) == {"members", "documents", "motions", "votes", "proposals", "link"}

    def test_split_stage_names(self) -> None:
        assert _split_stage_names("votes, proposals") == ["votes", "proposals"]

    def test_split_rejects_unknown(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            _split_stage_names("votes,bogus")

    def test_stages_command(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["stages"]) == 0
        output = capsys.readouterr().out
        assert "1. members" in output
        assert "6. link" in output

    def test_no_command_prints_help(self) -> None:
        assert main([]) == 1

    def test_unknown_only_exits(self) -> None:
        with pytest.raises(SystemExit):
            main(["run", "--only", "bogus"])

    def test_invalid_session_rejected(self) -> None:
        assert main(["--session", "2024/26", "members"]) == 1
