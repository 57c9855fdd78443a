# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
ceremony.cli
------------

Command-line participant client for a powers-of-tau ceremony.

Commands:
  - contribute      : run one contribution round and write the updated transcript
  - check-subgroup  : subgroup-check a transcript
  - verify          : verify a whole transcript (every contribution in it)
  - pubkeys         : derive the public keys for some entropy
  - config          : show the effective configuration

Configuration is resolved in this order (highest to lowest priority):
  1. Command-line flags
  2. Config file (--config / POT_CONFIG), otherwise POT_* environment variables
  3. Built-in defaults

Example:
  pot-contrib contribute --engine my_engine.bindings:engine \\
      --transcript https://seq.example.org/info/current_state \\
      --identity "eth|0x000000000000000000000000000000000000dead" \\
      -e "$(head -c 64 /dev/urandom | base64)" --verify-post --out updated.json
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Callable, List, NoReturn, Optional

import typer

from .config import CeremonyConfig
from .coordinator import ContributionCoordinator, ContributionReport
from .engine import bootstrap_engine, call_detached, load_engine
from .entropy import EntropyDeriver
from .errors import (
    EngineFailure,
    EngineUnavailable,
    InvalidEntropy,
    InvalidTranscript,
    TranscriptUnavailable,
)
from .source import load_transcript, save_transcript
from .transcript import normalize_transcript

__all__ = ["app", "main"]

EXIT_INVALID = 2
EXIT_ENGINE = 3

app = typer.Typer(
    name="pot-contrib",
    help="Powers-of-tau ceremony participant client.",
    no_args_is_help=True,
    add_completion=False,
)


class GlobalContext:
    def __init__(self):
        self.config_path: Optional[str] = None


_ctx = GlobalContext()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(msg: str, code: int) -> NoReturn:
    typer.echo(msg, err=True)
    raise typer.Exit(code)


def _base_config() -> CeremonyConfig:
    try:
        if _ctx.config_path:
            return CeremonyConfig.from_file(_ctx.config_path)
        return CeremonyConfig.from_env()
    except (OSError, ValueError) as e:
        _fail(f"Invalid configuration: {e}", EXIT_INVALID)


def _resolve(**overrides: Any) -> CeremonyConfig:
    base = _base_config()
    try:
        return base.replace(**overrides)
    except ValueError as e:
        _fail(f"Invalid configuration: {e}", EXIT_INVALID)


def _engine(cfg: CeremonyConfig) -> Any:
    if not cfg.engine:
        _fail("Missing --engine (and POT_ENGINE not set).", EXIT_INVALID)
    try:
        engine = load_engine(cfg.engine, spread_secrets=cfg.spread_secrets)
        bootstrap_engine(engine, cfg.concurrency)
    except EngineUnavailable as e:
        _fail(str(e), EXIT_INVALID)
    except EngineFailure as e:
        _fail(str(e), EXIT_ENGINE)
    return engine


def _transcript(cfg: CeremonyConfig) -> str:
    if not cfg.transcript_uri:
        _fail("Missing --transcript (and POT_TRANSCRIPT_URI not set).", EXIT_INVALID)
    try:
        return load_transcript(cfg.transcript_uri, timeout=cfg.fetch_timeout_s)
    except TranscriptUnavailable as e:
        _fail(str(e), EXIT_INVALID)


def _validated_transcript(cfg: CeremonyConfig) -> str:
    try:
        return normalize_transcript(_transcript(cfg))
    except InvalidTranscript as e:
        _fail(str(e), EXIT_INVALID)


def _run_check(label: str, check: Callable[[str], Any], doc: str, timeout: Optional[float]) -> bool:
    try:
        return bool(asyncio.run(call_detached(check, doc, timeout=timeout)))
    except asyncio.TimeoutError:
        _fail(f"{label} timed out after {timeout}s", EXIT_ENGINE)
    except NotImplementedError as e:
        _fail(f"{label} unavailable: {e}", EXIT_ENGINE)
    except Exception as e:
        _fail(f"{label} errored: {e!r}", EXIT_ENGINE)


def _entropy(values: Optional[List[str]]) -> Any:
    if not values:
        values = [typer.prompt("Entropy", hide_input=True)]
    return values[0] if len(values) == 1 else list(values)


def _print_report(report: ContributionReport, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2, default=str))
        return
    typer.echo(f"Contribution took {report.duration_s * 1000:.1f} ms ({report.mode.value}, {report.secret_count} secret(s))")
    for v in report.verifications:
        line = f"Subgroup check ({v.target.value}): {v.status.value}"
        typer.echo(line + (f" [{v.error}]" if v.error else ""))
    if report.public_keys is not None:
        typer.echo(f"Public keys: {json.dumps(report.public_keys, default=str)}")
    for a in report.auxiliary_failures:
        typer.echo(f"Warning: {a.step.value} failed: {a.cause!r}", err=True)


@app.callback()
def main_callback(
    config: Optional[str] = typer.Option(None, "--config", help="Path to a JSON/YAML config file", envvar="POT_CONFIG"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"),
) -> None:
    """
    Fetch the ceremony transcript, contribute entropy, verify the update.
    """
    _ctx.config_path = config
    _configure_logging(log_level)


@app.command("contribute")
def cmd_contribute(
    entropy: Optional[List[str]] = typer.Option(
        None, "--entropy", "-e",
        help="Entropy value. Pass once for single-secret mode or once per slot for multi-secret mode. Prompted if omitted.",
    ),
    identity: Optional[str] = typer.Option(None, "--identity", "-i", help="Contributor identity, e.g. eth|0x..."),
    transcript: Optional[str] = typer.Option(None, "--transcript", "-t", help="Transcript source (http(s)://, file:// or path)."),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Where to write the updated transcript."),
    engine: Optional[str] = typer.Option(None, "--engine", help="Engine import target 'package.module:attr'."),
    spread_secrets: Optional[bool] = typer.Option(
        None, "--spread-secrets/--no-spread-secrets",
        help="Pass multi-mode secrets to binding functions as separate arguments.",
    ),
    verify_pre: Optional[bool] = typer.Option(None, "--verify-pre/--no-verify-pre", help="Subgroup-check the input transcript."),
    verify_post: Optional[bool] = typer.Option(None, "--verify-post/--no-verify-post", help="Subgroup-check the updated transcript."),
    pubkeys: Optional[bool] = typer.Option(None, "--pubkeys/--no-pubkeys", help="Derive public keys from the secrets."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds allowed for the contribute call."),
    threads: Optional[int] = typer.Option(None, "--threads", help="Engine worker pool size (default: all cores)."),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
) -> None:
    """Run one contribution round."""
    cfg = _resolve(
        engine=engine,
        transcript_uri=transcript,
        identity=identity,
        spread_secrets=spread_secrets,
        verify_pre=verify_pre,
        verify_post=verify_post,
        derive_public_keys=pubkeys,
        engine_timeout_s=timeout,
        concurrency=threads,
    )
    if not cfg.identity:
        _fail("Missing --identity (and POT_IDENTITY not set).", EXIT_INVALID)

    eng = _engine(cfg)
    doc = _transcript(cfg)
    coordinator = ContributionCoordinator(eng, cfg)
    try:
        report = coordinator.run_contribution_sync(_entropy(entropy), cfg.identity, doc)
    except (InvalidEntropy, InvalidTranscript) as e:
        _fail(str(e), EXIT_INVALID)
    except EngineFailure as e:
        _fail(f"{e} (ceremony state possibly unchanged; retry with fresh entropy)", EXIT_ENGINE)

    if out:
        save_transcript(out, report.transcript)
    _print_report(report, as_json)


@app.command("check-subgroup")
def cmd_check_subgroup(
    transcript: Optional[str] = typer.Option(None, "--transcript", "-t", help="Transcript source (http(s)://, file:// or path)."),
    engine: Optional[str] = typer.Option(None, "--engine", help="Engine import target 'package.module:attr'."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds allowed for the check."),
) -> None:
    """Subgroup-check a transcript. Exits 1 when the check fails."""
    cfg = _resolve(engine=engine, transcript_uri=transcript, engine_timeout_s=timeout)
    eng = _engine(cfg)
    doc = _validated_transcript(cfg)
    valid = _run_check("Subgroup check", eng.check_subgroup, doc, cfg.engine_timeout_s)
    typer.echo(f"Subgroup check is correct: {str(valid).lower()}")
    if not valid:
        raise typer.Exit(1)


@app.command("verify")
def cmd_verify(
    transcript: Optional[str] = typer.Option(None, "--transcript", "-t", help="Transcript source (http(s)://, file:// or path)."),
    engine: Optional[str] = typer.Option(None, "--engine", help="Engine import target 'package.module:attr'."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds allowed for the verification."),
) -> None:
    """Verify every contribution recorded in a transcript. Exits 1 when it does not verify."""
    cfg = _resolve(engine=engine, transcript_uri=transcript, engine_timeout_s=timeout)
    eng = _engine(cfg)
    check = getattr(eng, "verify", None)
    if check is None:
        _fail("Engine does not verify whole transcripts.", EXIT_ENGINE)
    doc = _validated_transcript(cfg)
    valid = _run_check("Transcript verification", check, doc, cfg.engine_timeout_s)
    typer.echo(f"Transcript verification is correct: {str(valid).lower()}")
    if not valid:
        raise typer.Exit(1)


@app.command("pubkeys")
def cmd_pubkeys(
    entropy: Optional[List[str]] = typer.Option(None, "--entropy", "-e", help="Entropy value(s); prompted if omitted."),
    engine: Optional[str] = typer.Option(None, "--engine", help="Engine import target 'package.module:attr'."),
    spread_secrets: Optional[bool] = typer.Option(
        None, "--spread-secrets/--no-spread-secrets",
        help="Pass multi-mode secrets to binding functions as separate arguments.",
    ),
) -> None:
    """Derive the public keys the engine would publish for this entropy."""
    cfg = _resolve(engine=engine, spread_secrets=spread_secrets)
    eng = _engine(cfg)
    derive = getattr(eng, "derive_public_keys", None)
    if derive is None:
        _fail("Engine does not derive public keys.", EXIT_ENGINE)

    try:
        secrets = EntropyDeriver(cfg.secret_slots).derive(_entropy(entropy))
    except InvalidEntropy as e:
        _fail(str(e), EXIT_INVALID)
    try:
        keys = derive(secrets.for_engine())
    except Exception as e:
        _fail(f"Public key derivation failed: {e!r}", EXIT_ENGINE)
    typer.echo(json.dumps(keys, indent=2, default=str))


@app.command("config")
def cmd_config() -> None:
    """Show the effective configuration as JSON."""
    typer.echo(_resolve().to_json())


def main() -> None:  # pragma: no cover - thin wrapper
    """Entry point for the pot-contrib CLI."""
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("", err=True)
        sys.exit(130)


if __name__ == "__main__":  # pragma: no cover
    main()
