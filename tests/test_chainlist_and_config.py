from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from rpc_checks.chainlist import (
    ChainDirectoryError,
    chain_urls,
    fetch_chain_directory,
    load_chain_ids_file,
    parse_chain_ids,
    parse_chains,
    select_chains,
)
from rpc_checks.config import DEFAULT_CONFIG_PATH, CheckerSettings, clamp_concurrency, load_settings
from rpc_checks.main import _cli_overrides, build_parser
from rpc_checks.sink import ResultSink


def test_chain_urls_keeps_order_duplicates_and_bad_entries() -> None:
    raw = [
        "https://a.example",
        {"url": "https://b.example", "tracking": "none"},
        "https://a.example",
        {"tracking": "yes"},
        None,
    ]
    assert chain_urls(raw) == ["https://a.example", "https://b.example", "https://a.example", "", ""]
    assert chain_urls(None) == []


def test_parse_chains_skips_descriptors_without_chain_id() -> None:
    raw = [
        {"chainId": 1, "name": "Ethereum Mainnet", "rpc": ["https://a.example"]},
        {"name": "No id", "rpc": ["https://x.example"]},
        {"chainId": "", "name": "Empty id"},
        {"chainId": "10", "rpc": []},
        "garbage",
    ]
    parsed = parse_chains(raw)
    # Positions count every descriptor, including the skipped ones.
    assert [position for position, _chain in parsed] == [1, 4]
    chains = [chain for _position, chain in parsed]
    assert [c.chain_id for c in chains] == [1, "10"]
    assert chains[0].urls == ("https://a.example",)
    assert chains[1].name == "unknown"
    assert chains[1].key == "10"
    assert chains[1].urls == ()


@pytest.mark.parametrize("chain_id", ["../x", "1/2", " 7", "abc", "", 0, -1, "0", 1.5, True, None])
def test_parse_chains_rejects_ids_unusable_as_file_names(chain_id) -> None:
    parsed = parse_chains([{"chainId": chain_id, "name": "Bad", "rpc": ["https://a.example"]}])
    assert parsed == []


def test_result_sink_refuses_path_traversal(tmp_path: Path) -> None:
    sink = ResultSink(tmp_path)
    assert sink.path_for(137) == tmp_path / "137.json"
    with pytest.raises(ValueError):
        sink.path_for("../x")
    with pytest.raises(ValueError):
        sink.path_for("")


def test_select_chains_matches_numeric_strings_and_keeps_directory_order() -> None:
    raw = [
        {"chainId": 10, "name": "OP"},
        {"chainId": "1", "name": "ETH"},
        {"chainId": None, "name": "broken"},
        {"chainId": 56, "name": "BSC"},
    ]
    assert select_chains(raw, None) == raw
    selected = select_chains(raw, [1, 10])
    assert [c["name"] for c in selected] == ["OP", "ETH"]


def test_parse_chain_ids(tmp_path: Path) -> None:
    assert parse_chain_ids("1,10, 8453") == [1, 10, 8453]
    assert parse_chain_ids("1\n\n137abc\nfoo,56") == [1, 137, 56]
    assert parse_chain_ids("foo,bar") is None
    assert parse_chain_ids("") is None

    ids_file = tmp_path / "chains.txt"
    ids_file.write_text("1\n10\n# comment\n", encoding="utf-8")
    assert load_chain_ids_file(ids_file) == [1, 10]


@pytest.mark.asyncio
async def test_fetch_chain_directory_from_file_and_url(tmp_path: Path) -> None:
    good = tmp_path / "rpcs.json"
    good.write_text(json.dumps([{"chainId": 1, "rpc": []}]), encoding="utf-8")
    not_list = tmp_path / "obj.json"
    not_list.write_text(json.dumps({"chains": []}), encoding="utf-8")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/rpcs.json":
            return httpx.Response(200, json=[{"chainId": 137}])
        if request.url.path == "/object.json":
            return httpx.Response(200, json={"nope": True})
        return httpx.Response(503, text="unavailable")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await fetch_chain_directory(str(good), client) == [{"chainId": 1, "rpc": []}]
        assert await fetch_chain_directory("https://dir.example/rpcs.json", client) == [{"chainId": 137}]

        with pytest.raises(ChainDirectoryError):
            await fetch_chain_directory(str(not_list), client)
        with pytest.raises(ChainDirectoryError):
            await fetch_chain_directory(str(tmp_path / "missing.json"), client)
        with pytest.raises(ChainDirectoryError):
            await fetch_chain_directory("https://dir.example/object.json", client)
        with pytest.raises(ChainDirectoryError, match="503"):
            await fetch_chain_directory("https://dir.example/down", client)


def test_clamp_concurrency() -> None:
    assert clamp_concurrency(None) == 16
    assert clamp_concurrency("abc") == 16
    assert clamp_concurrency(0) == 16
    assert clamp_concurrency(-3) == 16
    assert clamp_concurrency("8") == 8
    assert clamp_concurrency(500) == 128
    assert CheckerSettings(concurrency=1000).concurrency == 128


def test_bundled_config_loads(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("LOG_LEVEL", "RPC_CHECKER_OUT_DIR", "RPC_CHECKER_CONCURRENCY", "RPC_CHECKER_CONFIG"):
        monkeypatch.delenv(var, raising=False)

    settings = load_settings(DEFAULT_CONFIG_PATH)
    assert settings.chainlist_url.startswith("https://")
    assert settings.concurrency == 16
    assert settings.chain_ids is None
    assert settings.probe_timeouts.connect_seconds == 3.0
    assert settings.probe_timeouts.rpc_seconds == 10.0
    assert settings.probe_timeouts.dns_seconds == 5.0


def test_settings_precedence(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg = tmp_path / "config.yaml"
    cfg.write_text("out_dir: /from/file\nconcurrency: 4\nskip_existing: true\n", encoding="utf-8")
    monkeypatch.setenv("RPC_CHECKER_CONCURRENCY", "32")
    monkeypatch.delenv("RPC_CHECKER_OUT_DIR", raising=False)

    settings = load_settings(cfg)
    assert settings.out_dir == "/from/file"
    assert settings.concurrency == 32
    assert settings.skip_existing is True

    settings = load_settings(cfg, overrides={"concurrency": "200", "out_dir": None})
    assert settings.concurrency == 128
    assert settings.out_dir == "/from/file"

    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(bad)


def test_cli_overrides(tmp_path: Path) -> None:
    ids_file = tmp_path / "ids.txt"
    ids_file.write_text("56,97", encoding="utf-8")

    args = build_parser().parse_args(["--chains=1,10", "--batch=4", "--skip-existing", "--out=/tmp/x"])
    overrides = _cli_overrides(args)
    assert overrides["chain_ids"] == [1, 10]
    assert overrides["concurrency"] == "4"
    assert overrides["skip_existing"] is True
    assert overrides["out_dir"] == "/tmp/x"

    args = build_parser().parse_args([f"--chains-file={ids_file}", "--chains=1"])
    assert _cli_overrides(args)["chain_ids"] == [56, 97]
    assert "skip_existing" not in _cli_overrides(args)
