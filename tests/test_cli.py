"""CLI tests for verikit subcommands."""

import json
from pathlib import Path
import sys

import httpx
import pytest

from verikit import cli
from verikit._internal.http import build_async_client
from verikit.kernel.hash_utils import keccak256

TOKEN_SRC = "pragma solidity ^0.8.0;\ncontract Token {}\n"
ADDRESS = "0x00000000219ab540356cBB839Cbe05303d7705Fa"


def _run_cli(args, monkeypatch):
    monkeypatch.setattr(sys, "argv", ["verikit"] + args)
    return cli.main()


def _write_json(path: Path, data: dict) -> None:
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _mock_service(monkeypatch, handler) -> None:
    """Route every client the CLI builds through a MockTransport."""
    monkeypatch.setattr(
        "verikit.client.build_async_client",
        lambda timeout=30.0: build_async_client(timeout=timeout, transport=httpx.MockTransport(handler)),
    )


@pytest.fixture
def state_file(tmp_path, monkeypatch):
    path = tmp_path / "state.json"
    monkeypatch.setenv("VERIKIT_STATE_FILE", str(path))
    monkeypatch.setenv("VERIKIT_SERVER_URL", "https://server.test")
    return path


def test_check_metadata_ok(monkeypatch, capsys, tmp_path):
    metadata_path = tmp_path / "metadata.json"
    _write_json(metadata_path, {"sources": {"contracts/Token.sol": {"keccak256": keccak256(TOKEN_SRC)}}})
    source_path = tmp_path / "renamed.sol"
    source_path.write_text(TOKEN_SRC, encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["check-metadata", str(metadata_path), str(source_path)], monkeypatch)
    assert excinfo.value.code == 0
    out = capsys.readouterr().out
    assert "Status: OK" in out
    assert "FOUND     contracts/Token.sol <- renamed.sol" in out


def test_check_metadata_missing_fails(monkeypatch, capsys, tmp_path):
    metadata_path = tmp_path / "metadata.json"
    _write_json(metadata_path, {"sources": {"contracts/Token.sol": {"keccak256": keccak256(TOKEN_SRC)}}})

    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["check-metadata", str(metadata_path)], monkeypatch)
    assert excinfo.value.code == 1
    out = capsys.readouterr().out
    assert "Status: FAILED" in out
    assert "MISSING   contracts/Token.sol" in out


def test_check_metadata_bad_manifest(monkeypatch, capsys, tmp_path):
    metadata_path = tmp_path / "metadata.json"
    metadata_path.write_text("{not json", encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["check-metadata", str(metadata_path)], monkeypatch)
    assert excinfo.value.code == 1
    assert "Error: Error parsing metadata.json" in capsys.readouterr().err


def test_diff_json(monkeypatch, capsys):
    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["diff", "00ff", "01ff", "--granularity", "byte", "--json"], monkeypatch)
    assert excinfo.value.code == 0
    result = json.loads(capsys.readouterr().out)
    assert result["added_count"] == 2
    assert result["removed_count"] == 2
    assert result["has_changes"] is True


def test_diff_reads_files(monkeypatch, capsys, tmp_path):
    a = tmp_path / "onchain.hex"
    a.write_text("6080\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        _run_cli(["diff", str(a), "6080"], monkeypatch)
    assert "Status: IDENTICAL" in capsys.readouterr().out


def test_diff_inline_runtime_sized_bytecode(monkeypatch, capsys):
    a = "60" * 3000
    b = "60" * 2999 + "61"
    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["diff", a, "0x" + b, "--granularity", "byte", "--json"], monkeypatch)
    assert excinfo.value.code == 0
    result = json.loads(capsys.readouterr().out)
    assert result["removed_count"] == 2
    assert result["added_count"] == 2


def test_diff_unrelated_inline_bytecode(monkeypatch, capsys):
    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["diff", "60" * 3000, "61" * 3000, "--granularity", "byte", "--json"], monkeypatch)
    assert excinfo.value.code == 0
    result = json.loads(capsys.readouterr().out)
    assert result["removed_count"] == 6000
    assert result["added_count"] == 6000


def test_diff_missing_file(monkeypatch, capsys, tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["diff", str(tmp_path / "missing.hex"), "6080"], monkeypatch)
    assert excinfo.value.code == 1
    assert "Bytecode file not found" in capsys.readouterr().err


def test_servers_and_etherscan_key(monkeypatch, capsys, state_file):
    _run_cli(["servers", "add", "https://custom.test/"], monkeypatch)
    _run_cli(["servers", "use", "https://custom.test"], monkeypatch)
    out = capsys.readouterr().out
    assert "* https://custom.test" in out
    assert "  https://server.test" in out

    _run_cli(["etherscan-key", "set", "ABC"], monkeypatch)
    assert "stored" in capsys.readouterr().out
    state = json.loads(state_file.read_text(encoding="utf-8"))
    assert state["verikit.etherscan_api_key"] == "ABC"

    _run_cli(["etherscan-key", "clear"], monkeypatch)
    assert "cleared" in capsys.readouterr().out


def test_verify_then_poll(monkeypatch, capsys, state_file, tmp_path):
    requests = []

    def handler(request):
        requests.append((request.method, request.url.host, request.url.path))
        if request.method == "POST":
            return httpx.Response(202, json={"verificationId": "job-1"})
        return httpx.Response(200, json={
            "isJobCompleted": True,
            "jobFinishTime": "2024-01-01T00:01:00Z",
            "contract": {"chainId": "1", "address": ADDRESS, "runtimeMatch": "exact_match"},
        })

    _mock_service(monkeypatch, handler)
    source_path = tmp_path / "Token.sol"
    source_path.write_text(TOKEN_SRC, encoding="utf-8")

    _run_cli([
        "verify", "--method", "single-file", "--chain", "1", "--address", ADDRESS,
        "--compiler-version", "0.8.19+commit.7dd6d404", "--contract-identifier", "Token.sol:Token",
        str(source_path),
    ], monkeypatch)
    out = capsys.readouterr().out
    assert "Verification id: job-1" in out
    assert requests[0] == ("POST", "server.test", f"/v2/verify/1/{ADDRESS}")

    _run_cli(["jobs", "list"], monkeypatch)
    assert "job-1  Pending" in capsys.readouterr().out

    _run_cli(["jobs", "poll"], monkeypatch)
    out = capsys.readouterr().out
    assert "1 job(s) completed" in out
    assert "Pending: 0" in out

    _run_cli(["jobs", "clear"], monkeypatch)
    _run_cli(["jobs", "list"], monkeypatch)
    assert "No tracked jobs" in capsys.readouterr().out


def test_verify_missing_materials(monkeypatch, capsys, state_file):
    _mock_service(monkeypatch, lambda request: httpx.Response(500))
    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["verify", "--method", "metadata-json", "--chain", "1", "--address", ADDRESS], monkeypatch)
    assert excinfo.value.code == 1
    assert "No metadata.json file uploaded" in capsys.readouterr().err


def test_lookup_not_verified(monkeypatch, capsys, state_file):
    _mock_service(monkeypatch, lambda request: httpx.Response(404))
    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["lookup", ADDRESS], monkeypatch)
    assert excinfo.value.code == 1
    assert "Not verified" in capsys.readouterr().out


def test_no_command_prints_help(monkeypatch):
    with pytest.raises(SystemExit) as excinfo:
        _run_cli([], monkeypatch)
    assert excinfo.value.code == 1
