"""
Unit tests for the command-line interface.

On-chain registries are replaced by in-memory ones through
``poolmigrate.cli.connect_registries``; the journal is a SQLite file in a
temporary directory.
"""

import asyncio
import json
import os
from uuid import uuid4

import pytest

from poolmigrate import cli
from poolmigrate.cli import build_parser, main, open_journal
from poolmigrate.events import PendingFinalize
from poolmigrate.models import PoolEntry
from poolmigrate.registries.in_memory import InMemoryCurrentRegistry, InMemoryLegacyRegistry
from tests.fixtures import (
    DISTRIBUTOR,
    EXISTING_POOLS,
    LEGACY_ALLOCATION,
    MASTER_SLOT,
    OTHER_ASSET,
    STAKED_ASSET,
)


@pytest.fixture
def environ(monkeypatch, tmp_path):
    env = {"POLYGON_URL": "http://localhost:8545", "PRIVATE_KEY": "11" * 32}
    monkeypatch.setattr(os, "environ", env)
    monkeypatch.chdir(tmp_path)
    return env


@pytest.fixture
def journal_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'journal.db'}"


@pytest.fixture
def registries(monkeypatch):
    """In-memory registry pair returned by connect_registries."""
    current = InMemoryCurrentRegistry(
        [PoolEntry(index=i, staked_asset=OTHER_ASSET) for i in range(EXISTING_POOLS)],
        enable_tracing=False,
    )
    legacy = InMemoryLegacyRegistry({MASTER_SLOT: LEGACY_ALLOCATION}, enable_tracing=False)
    monkeypatch.setattr(cli, "connect_registries", lambda settings: (current, legacy))
    return current, legacy


def add_pool_args(journal_url, *extra):
    return [
        "--journal-url",
        journal_url,
        "add-pool",
        "--alloc-point",
        "250",
        "--lp-token",
        STAKED_ASSET,
        "--sleep",
        "0",
        *extra,
    ]


async def _seed_marker(url, marker):
    async with open_journal(url) as journal:
        await journal.save_pending(marker)


class TestParser:
    def test_add_pool_arguments(self):
        args = build_parser().parse_args(
            [
                "--network",
                "goerli",
                "add-pool",
                "--alloc-point",
                "250",
                "--lp-token",
                STAKED_ASSET,
                "--sleep",
                "5",
                "--update",
                "--rewarder",
                DISTRIBUTOR,
            ]
        )

        assert args.network == "goerli"
        assert args.alloc_point == "250"
        assert args.lp_token == STAKED_ASSET
        assert args.sleep == "5"
        assert args.update is True
        assert args.rewarders == [DISTRIBUTOR]
        assert args.dry_run is False

    def test_update_defaults_to_false(self):
        args = build_parser().parse_args(
            ["add-pool", "--alloc-point", "1", "--lp-token", STAKED_ASSET, "--sleep", "0"]
        )

        assert args.update is False
        assert args.network == "polygon"

    def test_missing_lp_token(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["add-pool", "--alloc-point", "250", "--sleep", "0"])

        assert exc_info.value.code == 2

    def test_unknown_network(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--network", "mainnet", "pending"])

    def test_resume_requires_uuid(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["resume", "not-a-uuid"])

    @pytest.mark.parametrize("timeout", ["0", "-5", "nan", "soon"])
    def test_settlement_timeout_must_be_positive(self, environ, registries, journal_url, timeout):
        current, _ = registries

        with pytest.raises(SystemExit) as exc_info:
            main(add_pool_args(journal_url, "--settlement-timeout", timeout))

        assert exc_info.value.code == 2
        assert current.mutation_count == 0

    def test_settlement_timeout_accepts_fractions(self):
        args = build_parser().parse_args(
            [
                "add-pool",
                "--alloc-point",
                "1",
                "--lp-token",
                STAKED_ASSET,
                "--sleep",
                "0",
                "--settlement-timeout",
                "2.5",
            ]
        )

        assert args.settlement_timeout == 2.5

    def test_negative_pool_index_rejected(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["resume", str(uuid4()), "--pool-index", "-1"])

        assert exc_info.value.code == 2


class TestAddPool:
    """Tests for the add-pool command."""

    def test_dry_run(self, environ, journal_url, tmp_path, capsys):
        environ.clear()

        exit_code = main(add_pool_args(journal_url, "--dry-run"))

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["pool_index"] == 0
        assert output["allocation_points"] == 250
        assert output["legacy_allocation"] == 250
        assert not (tmp_path / "journal.db").exists()

    def test_invalid_address_fails_before_any_call(self, environ, registries, journal_url):
        current, legacy = registries

        args = add_pool_args(journal_url)
        args[args.index(STAKED_ASSET)] = "not-an-address"

        exit_code = main(args)

        assert exit_code == 1
        assert current.mutation_count == 0
        assert legacy.mutation_count == 0

    def test_negative_sleep_rejected(self, environ, registries, journal_url):
        current, _ = registries

        args = add_pool_args(journal_url)
        args[-1] = "-1"

        exit_code = main(args)

        assert exit_code == 1
        assert current.mutation_count == 0

    def test_runs_migration(self, environ, registries, journal_url, capsys):
        current, legacy = registries

        exit_code = main(add_pool_args(journal_url, "--update"))

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["pool_index"] == EXISTING_POOLS
        assert output["legacy_allocation"] == LEGACY_ALLOCATION + 250
        assert current.pools[EXISTING_POOLS].allocation_points == 250
        assert current.calls[0][1][2] is True

    def test_missing_signer(self, environ, journal_url):
        environ.clear()

        assert main(add_pool_args(journal_url)) == 1

    def test_failed_finalize_is_listed_as_pending(
        self, environ, registries, journal_url, capsys
    ):
        current, _ = registries
        current.revert_operations.add("set_pool")

        assert main(add_pool_args(journal_url)) == 1
        capsys.readouterr()

        assert main(["--journal-url", journal_url, "pending"]) == 0
        (marker,) = json.loads(capsys.readouterr().out)
        assert marker["legacy_allocation"] == LEGACY_ALLOCATION + 250
        assert marker["pool_index"] == EXISTING_POOLS
        assert marker["error_code"] == "TRANSACTION_REVERTED"


class TestResume:
    """Tests for the resume and pending commands."""

    def test_pending_empty(self, environ, journal_url, capsys):
        assert main(["--journal-url", journal_url, "pending"]) == 0
        assert json.loads(capsys.readouterr().out) == []

    def test_unknown_migration(self, environ, journal_url):
        assert main(["--journal-url", journal_url, "resume", str(uuid4())]) == 1

    def test_resumes_pending_migration(self, environ, registries, journal_url, capsys):
        current, legacy = registries
        asyncio.run(current.create_pool(STAKED_ASSET, [], False))
        marker = PendingFinalize(
            migration_id=uuid4(),
            staked_asset=STAKED_ASSET,
            requested_allocation_points=250,
            mass_update=False,
            master_slot=MASTER_SLOT,
            legacy_allocation=LEGACY_ALLOCATION + 250,
            expected_pool_index=EXISTING_POOLS,
            error_code="TRANSACTION_REVERTED",
        )
        asyncio.run(_seed_marker(journal_url, marker))

        exit_code = main(
            ["--journal-url", journal_url, "resume", str(marker.migration_id), "--pool-index", "3"]
        )

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["resumed"] is True
        assert output["pool_index"] == EXISTING_POOLS
        assert current.pools[EXISTING_POOLS].allocation_points == 250
        assert legacy.mutation_count == 0

        assert main(["--journal-url", journal_url, "pending"]) == 0
        assert json.loads(capsys.readouterr().out) == []
