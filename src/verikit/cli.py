"""verikit CLI: submit contracts for source verification and track the results."""

import argparse
import asyncio
import json
import logging
import re
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path
from typing import List, Optional


def _configure_logging(verbose: bool, quiet: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _open_state(args):
    """Config, persisted stores and the effective server URL for this invocation."""
    from .config import ClientConfig
    from .store import CredentialStore, JobStore, JsonFileStore, ServerUrlStore

    config = ClientConfig.from_env()
    if args.state_file:
        config = config.model_copy(update={"state_file": Path(args.state_file)})
    store = JsonFileStore(config.state_file)
    servers = ServerUrlStore(store)
    server_url = args.server or servers.current(default=config.server_url)
    return config, store, server_url, {
        "jobs": JobStore(store),
        "credentials": CredentialStore(store),
        "servers": servers,
    }


def _print_reconciliation(result) -> None:
    for check in result.sources:
        if check.status == "missing":
            print(f"  MISSING   {check.expected_file_name}")
        elif not check.is_valid:
            print(f"  INVALID   {check.expected_file_name} (expected {check.expected_hash}, got {check.actual_hash})")
        elif check.status == "embedded":
            print(f"  EMBEDDED  {check.expected_file_name}")
        else:
            print(f"  FOUND     {check.expected_file_name} <- {check.matched_file_name}")
    for extra in result.unnecessary:
        print(f"  UNNEEDED  {extra.file_name}")


def _print_job(job) -> None:
    print(f"  {job.id}  {job.outcome:<8}  submitted {job.submitted_at}")
    if job.contract is not None:
        c = job.contract
        print(f"    chain {c.chain_id} {c.address} runtime={c.runtime_match} creation={c.creation_match}")
    if job.error is not None:
        print(f"    {job.error.custom_code}: {job.error.message}")


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


async def _run_verify(args, config, server_url, stores) -> str:
    from .client import VerificationClient
    from .job_tracker import JobTracker
    from .kernel.candidates import CandidateFile
    from .kernel.std_input import CompilerSettings
    from .submission import SubmissionMaterials, SubmissionMethod, SubmissionRouter

    method = SubmissionMethod(args.method)
    async with VerificationClient(server_url, config=config) as client:
        materials = SubmissionMaterials(
            files=[CandidateFile.from_path(p) for p in args.files],
            metadata_file=CandidateFile.from_path(args.metadata) if args.metadata else None,
            language=args.language,
            compiler_version=args.compiler_version,
            contract_identifier=args.contract_identifier,
            settings=CompilerSettings(
                evm_version=args.evm_version,
                optimizer_enabled=args.optimize,
                optimizer_runs=args.runs,
            ),
            etherscan_api_key=args.etherscan_key,
            creation_transaction_hash=args.creation_tx,
        )
        if method is SubmissionMethod.BUILD_INFO:
            materials.known_versions = await client.fetch_solc_versions()
        if method is SubmissionMethod.EXTERNAL_IMPORT:
            materials.vyper_versions = await client.fetch_vyper_versions()

        router = SubmissionRouter(client, credentials=stores["credentials"])
        verification_id = await router.submit(method, args.chain, args.address, materials)
        # polling happens later, in `jobs poll`
        JobTracker(client, stores["jobs"]).record_submission(verification_id)
        return verification_id


async def _run_jobs_poll(args, config, server_url, stores) -> List:
    from .client import VerificationClient
    from .job_tracker import JobTracker

    async with VerificationClient(server_url, config=config) as client:
        tracker = JobTracker(client, stores["jobs"], interval=config.job_poll_seconds)
        if not args.watch:
            return await tracker.poll_once()

        completed = []
        tracker.on_completed(completed.append)
        tracker.start()
        try:
            while tracker.is_polling:
                await asyncio.sleep(0.5)
        finally:
            tracker.stop()
        return completed


async def _run_status(args, config, server_url, stores) -> None:
    from .client import VerificationClient
    from .external_verifiers import ExternalVerifierTracker, records_from_job

    async with VerificationClient(server_url, config=config) as client:
        status = await client.get_job_status(args.job_id)
        print(f"[OK] Job {args.job_id}")
        print(f"  Status: {'COMPLETED' if status.is_job_completed else 'PENDING'}")
        if status.contract is not None:
            c = status.contract
            print(f"  Contract: chain {c.chain_id} {c.address} runtime={c.runtime_match} creation={c.creation_match}")
            print(f"  Repository: {client.repo_link(c.chain_id, c.address)}")
        if status.error is not None:
            print(f"  Error: {status.error.custom_code}: {status.error.message}")

        records = records_from_job(status)
        if not records:
            return
        tracker = ExternalVerifierTracker(
            client.http, stores["credentials"], interval=config.verifier_poll_seconds
        )
        if args.watch:
            tracker.track(records, job_finish_time=status.job_finish_time)
            try:
                while tracker.is_polling:
                    await asyncio.sleep(0.5)
            finally:
                tracker.stop()
            snapshot = tracker.observable.snapshot
        else:
            snapshot = await tracker.fetch_all(records, job_finish_time=status.job_finish_time)

        print("  External verifiers:")
        for record in records:
            s = snapshot.get(record.key)
            state = s.state.upper() if s else "UNKNOWN"
            message = f" ({s.message})" if s and s.message else ""
            print(f"    {record.label}: {state}{message}")


async def _run_lookup(args, config, server_url) -> List:
    from .client import VerificationClient

    async with VerificationClient(server_url, config=config) as client:
        if args.chain:
            match = await client.get_contract(args.chain, args.address)
            return [match] if match is not None else []
        return await client.get_contract_all_chains(args.address)


async def _run_chains(config, server_url) -> List:
    from .client import VerificationClient

    async with VerificationClient(server_url, config=config) as client:
        return await client.get_chains()


async def _run_diff(a: str, b: str, granularity: str):
    from .diff_worker import DiffSession, select_executor

    session = DiffSession(select_executor())
    try:
        return await session.compute(a, b, granularity)
    finally:
        session.close()


_INLINE_HEX = re.compile(r"^(0[xX])?[0-9a-fA-F]*$")


def _read_bytecode(value: str) -> str:
    """Inline hex, or anything else read from the file it names; 0x is dropped."""
    value = value.strip()
    if not _INLINE_HEX.match(value):
        try:
            value = Path(value).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            raise FileNotFoundError(f"Bytecode file not found: {value}")
        except OSError as e:
            raise ValueError(f"Cannot read bytecode from {value}: {e.strerror or e}")
    return value[2:] if value[:2] in ("0x", "0X") else value


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point for verikit commands."""
    try:
        verikit_version = get_version("verikit")
    except PackageNotFoundError:
        verikit_version = "dev"

    parser = argparse.ArgumentParser(
        prog="verikit",
        description="verikit: submit smart contract sources for verification and track the results"
    )
    parser.add_argument("--version", action="version", version=f"verikit {verikit_version}")
    # Common arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all non-error output."
    )
    parent_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log request and polling details."
    )
    parent_parser.add_argument(
        "--server",
        default=None,
        help="Verification server URL (overrides the stored selection)"
    )
    parent_parser.add_argument(
        "--state-file",
        default=None,
        help="Path to the local state file (defaults to VERIKIT_STATE_FILE or ~/.verikit/state.json)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("chains", help="List chains supported by the server", parents=[parent_parser])

    check_parser = subparsers.add_parser(
        "check-metadata",
        help="Check source files against a metadata.json by content hash",
        parents=[parent_parser]
    )
    check_parser.add_argument("metadata", type=Path, help="Path to metadata.json")
    check_parser.add_argument("files", type=Path, nargs="*", help="Candidate source files")

    verify_parser = subparsers.add_parser(
        "verify",
        help="Submit a contract for verification",
        parents=[parent_parser]
    )
    verify_parser.add_argument(
        "--method",
        required=True,
        choices=["single-file", "multiple-files", "std-json", "build-info", "metadata-json", "external-import"],
        help="Submission method"
    )
    verify_parser.add_argument("--chain", required=True, help="Chain id")
    verify_parser.add_argument("--address", required=True, help="Contract address")
    verify_parser.add_argument("--compiler-version", default=None, help="Full compiler version, e.g. 0.8.19+commit.7dd6d404")
    verify_parser.add_argument("--contract-identifier", default=None, help="path:ContractName")
    verify_parser.add_argument("--language", choices=["solidity", "vyper"], default="solidity")
    verify_parser.add_argument("--evm-version", default="default")
    verify_parser.add_argument("--optimize", action="store_true", help="Enable the optimizer")
    verify_parser.add_argument("--runs", type=int, default=200, help="Optimizer runs")
    verify_parser.add_argument("--metadata", type=Path, default=None, help="metadata.json (metadata-json method)")
    verify_parser.add_argument("--creation-tx", default=None, help="Creation transaction hash")
    verify_parser.add_argument("--etherscan-key", default=None, help="Etherscan API key (external-import)")
    verify_parser.add_argument("files", type=Path, nargs="*", help="Source or JSON input files")

    status_parser = subparsers.add_parser("status", help="Show a verification job's status", parents=[parent_parser])
    status_parser.add_argument("job_id", help="Verification id")
    status_parser.add_argument("--watch", action="store_true", help="Keep polling external verifiers until resolved")

    jobs_parser = subparsers.add_parser("jobs", help="Locally tracked verification jobs")
    jobs_subparsers = jobs_parser.add_subparsers(dest="jobs_command", help="Available jobs commands")
    jobs_list_parser = jobs_subparsers.add_parser("list", help="List tracked jobs", parents=[parent_parser])
    jobs_list_parser.add_argument("--limit", type=int, default=None, help="Show only the most recent N jobs")
    jobs_poll_parser = jobs_subparsers.add_parser("poll", help="Poll pending jobs", parents=[parent_parser])
    jobs_poll_parser.add_argument("--watch", action="store_true", help="Keep polling until no job is pending")
    jobs_subparsers.add_parser("clear", help="Delete all tracked jobs", parents=[parent_parser])

    lookup_parser = subparsers.add_parser("lookup", help="Look up verified contracts", parents=[parent_parser])
    lookup_parser.add_argument("address", help="Contract address")
    lookup_parser.add_argument("--chain", default=None, help="Restrict to one chain id")

    diff_parser = subparsers.add_parser("diff", help="Diff two bytecode strings (or files)", parents=[parent_parser])
    diff_parser.add_argument("a", help="Hex string or path (e.g. on-chain bytecode)")
    diff_parser.add_argument("b", help="Hex string or path (e.g. recompiled bytecode)")
    diff_parser.add_argument("--granularity", choices=["char", "byte"], default="char")
    diff_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")

    servers_parser = subparsers.add_parser("servers", help="Manage verification server URLs")
    servers_subparsers = servers_parser.add_subparsers(dest="servers_command", help="Available servers commands")
    for name, help_text in (("add", "Add a custom server URL"), ("remove", "Remove a custom server URL"),
                            ("use", "Select the server URL to use")):
        p = servers_subparsers.add_parser(name, help=help_text, parents=[parent_parser])
        p.add_argument("url", help="Server URL")
    servers_subparsers.add_parser("list", help="List server URLs", parents=[parent_parser])

    key_parser = subparsers.add_parser("etherscan-key", help="Manage the stored Etherscan API key")
    key_subparsers = key_parser.add_subparsers(dest="key_command", help="Available etherscan-key commands")
    key_set_parser = key_subparsers.add_parser("set", help="Store an API key", parents=[parent_parser])
    key_set_parser.add_argument("api_key", help="Etherscan API key")
    key_subparsers.add_parser("clear", help="Remove the stored API key", parents=[parent_parser])

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)
    if args.command == "jobs" and args.jobs_command is None:
        jobs_parser.print_help()
        sys.exit(1)
    if args.command == "servers" and args.servers_command is None:
        servers_parser.print_help()
        sys.exit(1)
    if args.command == "etherscan-key" and args.key_command is None:
        key_parser.print_help()
        sys.exit(1)

    _configure_logging(args.verbose, args.quiet)

    from .errors import VerikitError

    try:
        if args.command == "check-metadata":
            from .api import check_metadata

            outcome = check_metadata(args.metadata, args.files)
            if not outcome.ok:
                _fail(outcome.failure.message)
            result = outcome.value
            if not args.quiet:
                print("[OK] Metadata check complete")
                _print_reconciliation(result)
                print(f"  Status: {'OK' if result.all_required_satisfied else 'FAILED'}")
                print(f"  {result.message}")
            sys.exit(0 if result.all_required_satisfied else 1)

        elif args.command == "diff":
            response = asyncio.run(_run_diff(_read_bytecode(args.a), _read_bytecode(args.b), args.granularity))
            if response is None or response.error:
                _fail(response.error if response is not None else "diff was cancelled")
            result = response.result
            if args.json:
                print(result.model_dump_json(indent=2))
            elif not args.quiet:
                print("[OK] Diff complete")
                print(f"  Status: {'CHANGED' if result.has_changes else 'IDENTICAL'}")
                print(f"  Added: {result.added_count} chars")
                print(f"  Removed: {result.removed_count} chars")
                print(f"  Segments: {len(result.segments)}")
            sys.exit(0)

        config, store, server_url, stores = _open_state(args)

        if args.command == "chains":
            chains = asyncio.run(_run_chains(config, server_url))
            if not args.quiet:
                for chain in chains:
                    flag = "" if chain.supported else " (not supported)"
                    print(f"  {chain.chain_id:>10}  {chain.display_name}{flag}")

        elif args.command == "verify":
            verification_id = asyncio.run(_run_verify(args, config, server_url, stores))
            if not args.quiet:
                print("[OK] Submitted for verification")
                print(f"  Verification id: {verification_id}")
                print(f"  Track with: verikit status {verification_id}")

        elif args.command == "status":
            asyncio.run(_run_status(args, config, server_url, stores))

        elif args.command == "jobs" and args.jobs_command == "list":
            jobs = stores["jobs"].recent(args.limit) if args.limit else stores["jobs"].all()
            if not args.quiet:
                if not jobs:
                    print("No tracked jobs")
                for job in jobs:
                    _print_job(job)

        elif args.command == "jobs" and args.jobs_command == "poll":
            completed = asyncio.run(_run_jobs_poll(args, config, server_url, stores))
            if not args.quiet:
                print(f"[OK] Poll complete ({len(completed)} job(s) completed)")
                for job in completed:
                    _print_job(job)
                print(f"  Pending: {len(stores['jobs'].pending())}")

        elif args.command == "jobs" and args.jobs_command == "clear":
            stores["jobs"].clear()
            if not args.quiet:
                print("[OK] Cleared tracked jobs")

        elif args.command == "lookup":
            matches = asyncio.run(_run_lookup(args, config, server_url))
            if not args.quiet:
                if not matches:
                    print("Not verified")
                for m in matches:
                    print(f"  chain {m.chain_id}: {m.match or 'unknown'} (runtime={m.runtime_match}, creation={m.creation_match})")
            sys.exit(0 if matches else 1)

        elif args.command == "servers":
            servers = stores["servers"]
            if args.servers_command == "add":
                servers.add_custom(args.url)
            elif args.servers_command == "remove":
                servers.remove_custom(args.url)
            elif args.servers_command == "use":
                servers.set_current(args.url)
            if not args.quiet:
                current = servers.current(default=config.server_url)
                for url in [config.server_url] + servers.custom():
                    marker = "*" if url == current else " "
                    print(f"  {marker} {url}")

        elif args.command == "etherscan-key":
            credentials = stores["credentials"]
            if args.key_command == "set":
                credentials.set_etherscan_api_key(args.api_key)
            else:
                credentials.remove_etherscan_api_key()
            if not args.quiet:
                print(f"[OK] Etherscan API key {'stored' if credentials.has_etherscan_api_key() else 'cleared'}")

    except VerikitError as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.details and args.verbose:
            print(json.dumps(e.details, indent=2, default=str), file=sys.stderr)
        sys.exit(1)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
