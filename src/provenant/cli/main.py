"""Command-line interface for provenant."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

import click

from ..anchoring.proof_links import build_proof_links
from ..bootstrap import Services, build_services
from ..config import Settings
from ..db.session import build_engine, init_db
from ..errors import ProvenantError


def _emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _services() -> Services:
    root = click.get_current_context().find_root()
    obj = root.ensure_object(dict)
    if "services" not in obj:
        services = build_services(obj.get("settings"))
        obj["services"] = services
        root.call_on_close(services.close)
    return obj["services"]


def _settings() -> Settings:
    obj = click.get_current_context().find_root().ensure_object(dict)
    if "services" in obj:
        return obj["services"].settings
    if "settings" not in obj:
        obj["settings"] = Settings.from_env()
    return obj["settings"]


def _fail(exc: ProvenantError) -> None:
    click.echo(json.dumps({"error": exc.to_dict()}, indent=2, default=str), err=True)
    click.get_current_context().exit(1)


@click.group()
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
def cli(log_level: str) -> None:
    """Anchor product claims on a consensus log and verify them."""

    logging.basicConfig(level=log_level.upper(), format="[%(levelname)s] %(name)s: %(message)s")


@cli.command("init-db")
def init_db_command() -> None:
    """Create the catalog tables if they do not exist."""

    settings = _settings()
    engine = build_engine(settings.database_url)
    try:
        init_db(engine)
    finally:
        engine.dispose()
    click.echo(f"Initialized schema at {settings.database_url}")


@cli.command()
@click.argument("product_name")
@click.argument("supplier_name")
@click.option("--description", default=None, help="Free-text product description.")
@click.option(
    "--claim",
    "claims",
    type=(str, str),
    multiple=True,
    metavar="TYPE DESCRIPTION",
    help="Claim to anchor with the product. Repeat for several claims.",
)
def register(
    product_name: str,
    supplier_name: str,
    description: Optional[str],
    claims: Tuple[Tuple[str, str], ...],
) -> None:
    """Register a product and anchor its claims."""

    payload = [{"claim_type": kind, "description": text} for kind, text in claims]
    try:
        result = _services().registrar.register_product(
            product_name, supplier_name, description, payload
        )
    except ProvenantError as exc:
        _fail(exc)
        return
    _emit(result.to_dict())


@cli.command("add-claim")
@click.argument("batch_id")
@click.argument("claim_type")
@click.argument("description")
def add_claim(batch_id: str, claim_type: str, description: str) -> None:
    """Attach a claim to an existing product and anchor it."""

    try:
        outcome = _services().registrar.add_claim(batch_id, claim_type, description)
    except ProvenantError as exc:
        _fail(exc)
        return
    _emit(outcome.to_dict())


@cli.command()
@click.argument("claim_id")
def resubmit(claim_id: str) -> None:
    """Anchor a claim whose earlier attempt failed."""

    try:
        outcome = _services().registrar.resubmit_claim(claim_id)
    except ProvenantError as exc:
        _fail(exc)
        return
    _emit(outcome.to_dict())


@cli.command()
@click.argument("batch_id")
@click.option("--claim-id", default=None, help="Verify a single claim of the product.")
def verify(batch_id: str, claim_id: Optional[str]) -> None:
    """Report the verification status of a product or one of its claims."""

    try:
        verifier = _services().verifier
        if claim_id:
            _emit(verifier.verify_claim(batch_id, claim_id).model_dump(mode="json"))
        else:
            _emit(verifier.verify_product(batch_id).to_dict())
    except ProvenantError as exc:
        _fail(exc)


@cli.command("verify-transaction")
@click.argument("transaction_id")
def verify_transaction(transaction_id: str) -> None:
    """Check whether a transaction reached consensus."""

    try:
        result = _services().verifier.verify_transaction(transaction_id)
    except ProvenantError as exc:
        _fail(exc)
        return
    _emit(result.to_dict())


@cli.command()
@click.argument("transaction_id")
@click.option("--topic-id", default=None, help="Defaults to HEDERA_TOPIC_ID.")
@click.option("--network", default=None, help="Defaults to HEDERA_NETWORK.")
def links(transaction_id: str, topic_id: Optional[str], network: Optional[str]) -> None:
    """Print explorer and mirror-node links for a transaction."""

    settings = _settings()
    topic_id = topic_id or settings.hedera_topic_id
    if not topic_id:
        raise click.UsageError("No topic id given and HEDERA_TOPIC_ID is not set")
    try:
        proof = build_proof_links(transaction_id, topic_id, network or settings.hedera_network)
    except ProvenantError as exc:
        _fail(exc)
        return
    _emit(proof.to_dict())


@cli.command("batch-stats")
@click.argument("prefix")
@click.option("--year", type=int, default=None, help="Defaults to the current UTC year.")
def batch_stats(prefix: str, year: Optional[int]) -> None:
    """Summarize the batch ids issued for a prefix in one year."""

    year = year or datetime.now(timezone.utc).year
    try:
        stats = _services().store.list_prefix_statistics(prefix, year)
    except ProvenantError as exc:
        _fail(exc)
        return
    _emit(stats)


@cli.command()
@click.option("--limit", default=100, show_default=True, type=int, help="Rows per status.")
def reconcile(limit: int) -> None:
    """Repair anchoring attempts interrupted between the log and the store."""

    try:
        report = _services().reconciler.run(limit=limit)
    except ProvenantError as exc:
        _fail(exc)
        return
    _emit(report.to_dict())


if __name__ == "__main__":
    cli()
