"""Unit tests for the command-line entry point."""

import sys
from unittest.mock import AsyncMock, patch

import pytest
from solders.pubkey import Pubkey

from crank import main as cli
from crank.src.errors import ConfigError


class TestParsePubkeys:
    """Test comma-separated address parsing."""

    def test_parses_in_order(self) -> None:
        """Keys should be parsed in order, ignoring blanks and whitespace."""
        a, b = Pubkey.new_unique(), Pubkey.new_unique()
        assert cli.parse_pubkeys(f" {a}, ,{b} ") == [a, b]

    def test_empty(self) -> None:
        """No value should mean no keys."""
        assert cli.parse_pubkeys(None) == []
        assert cli.parse_pubkeys("") == []

    def test_invalid(self) -> None:
        """Invalid base58 should raise ValueError."""
        with pytest.raises(ValueError):
            cli.parse_pubkeys("not-a-key")


class TestBuildParser:
    """Test CLI defaults and environment fallbacks."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Defaults should match the documented configuration."""
        for name in ("RPC_URL", "KEYPAIR_PATH", "FEEDS", "QUEUE", "MODE", "CROSSBAR_URL",
                     "NUM_SIGNATURES", "RATE_CAPACITY", "RATE_INTERVAL", "CONCURRENCY",
                     "RPC_TIMEOUT", "VERIFY_SIGNATURES"):
            monkeypatch.delenv(name, raising=False)

        args = cli.build_parser().parse_args([])

        assert args.rpc_url is None
        assert args.keypair == "~/.config/solana/id.json"
        assert args.mode == "consensus"
        assert args.crossbar_url == "https://crossbar.switchboard.xyz"
        assert args.num_signatures == 1
        assert args.rate_capacity == 15
        assert args.rate_interval == 15.0
        assert args.concurrency == 5
        assert args.rpc_timeout == 180.0
        assert not args.verify_signatures

    def test_environment_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables should provide defaults."""
        monkeypatch.setenv("RPC_URL", "https://rpc.example.com")
        monkeypatch.setenv("MODE", "responses")
        monkeypatch.setenv("RATE_CAPACITY", "30")
        monkeypatch.setenv("VERIFY_SIGNATURES", "true")

        args = cli.build_parser().parse_args([])

        assert args.rpc_url == "https://rpc.example.com"
        assert args.mode == "responses"
        assert args.rate_capacity == 30
        assert args.verify_signatures

    def test_cli_overrides_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """CLI arguments should take precedence over the environment."""
        monkeypatch.setenv("RPC_URL", "https://env.example.com")
        args = cli.build_parser().parse_args(["--rpc-url", "https://cli.example.com"])
        assert args.rpc_url == "https://cli.example.com"


class TestMain:
    """Test argument validation and exit codes."""

    def run_main(self, monkeypatch: pytest.MonkeyPatch, argv: list[str]) -> int:
        monkeypatch.setattr(sys, "argv", ["crank", *argv])
        with pytest.raises(SystemExit) as exc_info:
            cli.main()
        return exc_info.value.code

    def test_requires_rpc_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A missing RPC URL should be a usage error."""
        monkeypatch.delenv("RPC_URL", raising=False)
        assert self.run_main(monkeypatch, ["--feeds", str(Pubkey.new_unique())]) == 2

    def test_requires_feeds(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """At least one feed is required."""
        monkeypatch.delenv("FEEDS", raising=False)
        assert self.run_main(monkeypatch, ["--rpc-url", "https://rpc.example.com"]) == 2

    def test_invalid_feed_address(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """An invalid feed address should be a usage error."""
        assert self.run_main(
            monkeypatch, ["--rpc-url", "https://rpc.example.com", "--feeds", "bogus"]
        ) == 2

    def test_exit_code_from_run(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The process should exit with the code returned by the run."""
        feed = Pubkey.new_unique()
        with patch.object(cli, "run", new=AsyncMock(return_value=1)) as run:
            code = self.run_main(
                monkeypatch, ["--rpc-url", "https://rpc.example.com", "--feeds", str(feed)]
            )

        assert code == 1
        _, feeds, queue = run.call_args[0]
        assert feeds == [feed]
        assert queue is None

    def test_config_error_exits_nonzero(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A configuration failure at startup should exit with status 1."""
        with patch.object(cli, "run", new=AsyncMock(side_effect=ConfigError("bad keypair"))):
            code = self.run_main(
                monkeypatch,
                ["--rpc-url", "https://rpc.example.com", "--feeds", str(Pubkey.new_unique())],
            )
        assert code == 1
