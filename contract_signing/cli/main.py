"""Main CLI application"""

import asyncio
import json
import logging
from datetime import timedelta
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from contract_signing.cli.init_cmd import init_command

app = typer.Typer(
    name="contract-signing",
    help="WebMarcas contract generation, digital signature and certification",
    add_completion=False,
)

console = Console(force_terminal=True)

STATUS_COLORS = {
    "unsigned": "dim",
    "link_generated": "cyan",
    "sent": "blue",
    "viewed": "yellow",
    "signed": "green",
    "expired": "red",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    from contract_signing.utils.config import get_settings

    level = logging.DEBUG if verbose else get_settings().log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _lifecycle():
    from contract_signing.db.supabase import get_database
    from contract_signing.services.lifecycle import SignatureLifecycle

    return SignatureLifecycle(get_database())


def _load_json(value: Optional[str], what: str) -> dict:
    if not value:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError:
        console.print(f"[red]Invalid JSON for {what}[/red]")
        raise typer.Exit(1)
    if not isinstance(data, dict):
        console.print(f"[red]{what} must be a JSON object[/red]")
        raise typer.Exit(1)
    return data


def _fail(error: Exception) -> None:
    console.print(f"[red]Error: {error}[/red]")
    raise typer.Exit(1)


@app.command("init")
def init(
    skip_templates: bool = typer.Option(False, "--skip-templates", help="Only create the schema"),
):
    """Initialize database and load bundled templates"""
    if not init_command(with_templates=not skip_templates):
        raise typer.Exit(1)


@app.command("templates")
def templates(
    all_templates: bool = typer.Option(False, "--all", "-a", help="Include inactive templates"),
):
    """List document templates and which one each document type resolves to"""
    from contract_signing.errors import NotFound
    from contract_signing.models.template import DocumentType

    lifecycle = _lifecycle()
    rows = lifecycle.resolver.list_templates(active_only=not all_templates)
    if not rows:
        console.print("[yellow]No templates available[/yellow]")
        console.print("Use [cyan]python -m contract_signing load-templates[/cyan] to import the bundled ones")
        return

    table = Table(title="Document Templates")
    table.add_column("Name", style="cyan")
    table.add_column("Active", justify="center")
    table.add_column("Created", style="dim")
    table.add_column("ID", style="dim")
    for t in rows:
        table.add_row(
            t.name,
            "[green]yes[/green]" if t.is_active else "[red]no[/red]",
            t.created_at.strftime("%Y-%m-%d %H:%M"),
            t.id[:8],
        )
    console.print(table)

    console.print("\n[bold]Resolution:[/bold]")
    for document_type in DocumentType:
        try:
            selected = lifecycle.resolver.select(document_type)
            console.print(f"  {document_type.value:20} -> [green]{selected.name}[/green]")
        except NotFound as e:
            console.print(f"  {document_type.value:20} -> [red]{e.message}[/red]")


@app.command("load-templates")
def load_templates(
    directory: Optional[str] = typer.Option(None, "--dir", "-d", help="Directory of template JSON files"),
):
    """Import template JSON files into the template source"""
    from contract_signing.db.supabase import get_database
    from contract_signing.services.templates import load_template_catalogue

    try:
        count = load_template_catalogue(get_database(), directory)
    except (OSError, ValueError) as e:
        _fail(e)
    console.print(f"[green][OK] Loaded {count} templates[/green]")


@app.command("create")
def create(
    document_type: str = typer.Argument(..., help="contract | procuracao | distrato_multa | distrato_sem_multa"),
    signer_id: Optional[str] = typer.Option(None, "--signer-id", help="Signer profile id"),
    signer: Optional[str] = typer.Option(None, "--signer", help="Signer snapshot as JSON"),
    data: Optional[str] = typer.Option(None, "--data", help="Variables as JSON"),
    brand: Optional[str] = typer.Option(None, "--brand", "-b", help="Brand name"),
    business_area: Optional[str] = typer.Option(None, "--area", help="Business area"),
    payment_method: Optional[str] = typer.Option(None, "--payment", help="avista | cartao6x | boleto3x"),
):
    """Create an unsigned contract from the active template"""
    from contract_signing.errors import ContractSigningError
    from contract_signing.models.contract import SignerSnapshot
    from contract_signing.models.template import DocumentType, VariableBag
    from contract_signing.services.variables import BrandFacts

    try:
        document_type = DocumentType(document_type)
    except ValueError:
        console.print(f"[red]Unknown document type '{document_type}'[/red]")
        console.print(f"Available: {', '.join(t.value for t in DocumentType)}")
        raise typer.Exit(1)

    variables = _load_json(data, "--data")
    lifecycle = _lifecycle()
    try:
        if signer_id:
            contract = lifecycle.create_for_signer(
                document_type,
                signer_id,
                brand=BrandFacts(brand_name=brand or "", business_area=business_area or ""),
                payment_method=payment_method,
                extra=variables or None,
            )
        elif signer:
            contract = lifecycle.create_contract(
                document_type,
                VariableBag(values=variables),
                SignerSnapshot(**_load_json(signer, "--signer")),
                subject=brand or "",
            )
        else:
            console.print("[red]Provide --signer-id or --signer[/red]")
            raise typer.Exit(1)
    except ContractSigningError as e:
        _fail(e)

    console.print(Panel(
        f"[bold]ID:[/bold] {contract.id}\n"
        f"[bold]Type:[/bold] {contract.document_type.value}\n"
        f"[bold]Signer:[/bold] {contract.signer.name}\n"
        f"[bold]Subject:[/bold] {contract.subject or '-'}",
        title="[green]Contract created[/green]",
        border_style="green",
    ))


@app.command("show")
def show(
    contract_id: str = typer.Argument(..., help="Contract ID"),
    content: bool = typer.Option(False, "--content", "-c", help="Print the rendered body"),
):
    """Show a contract and its effective status"""
    from contract_signing.errors import ContractSigningError

    lifecycle = _lifecycle()
    try:
        contract = lifecycle.get(contract_id)
    except ContractSigningError as e:
        _fail(e)

    status = contract.effective_status(lifecycle.clock()).value
    color = STATUS_COLORS.get(status, "white")
    console.print(Panel(
        f"[bold]Type:[/bold] {contract.document_type.value}\n"
        f"[bold]Status:[/bold] [{color}]{status}[/{color}]\n"
        f"[bold]Signer:[/bold] {contract.signer.name} ({contract.signer.tax_id or '-'})\n"
        f"[bold]Link expires:[/bold] {contract.token_expires_at or '-'}\n"
        f"[bold]Signed at:[/bold] {contract.signed_at or '-'}",
        title=f"Contract {contract.id[:8]}",
    ))
    if content:
        console.print(contract.content)


@app.command("link")
def link(
    contract_id: str = typer.Argument(..., help="Contract ID"),
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Link validity in days"),
):
    """Generate a fresh signing link (invalidates the previous one)"""
    from contract_signing.errors import ContractSigningError

    lifecycle = _lifecycle()
    ttl = timedelta(days=days) if days else None
    try:
        token = asyncio.run(lifecycle.generate_link(contract_id, ttl, ip_address="cli"))
    except ContractSigningError as e:
        _fail(e)

    console.print("[green][OK] Link generated[/green]")
    console.print(f"  URL: [cyan]{token.url}[/cyan]")
    console.print(f"  Expires: {token.expires_at.isoformat()}")


@app.command("send")
def send(
    contract_id: str = typer.Argument(..., help="Contract ID"),
    channel: Optional[List[str]] = typer.Option(None, "--channel", "-c", help="in_app | sms | whatsapp | email"),
):
    """Send the signing link to the signer"""
    from contract_signing.errors import ContractSigningError
    from contract_signing.models.dispatch import Channel

    try:
        channels = [Channel(c) for c in channel] if channel else None
    except ValueError as e:
        _fail(e)

    lifecycle = _lifecycle()
    try:
        result = asyncio.run(lifecycle.request_signature(contract_id, channels, ip_address="cli"))
    except ContractSigningError as e:
        _fail(e)

    table = Table(title=f"Signature request - {contract_id[:8]}")
    table.add_column("Channel", style="cyan")
    table.add_column("Status")
    table.add_column("Recipient")
    table.add_column("Attempts", justify="right")
    table.add_column("Error", style="dim")
    for ch, attempt in result.attempts.items():
        status = "[green]sent[/green]" if attempt.ok else "[red]failed[/red]"
        table.add_row(
            ch.value, status, attempt.recipient_address or "-",
            str(attempt.attempts), attempt.error_message or "",
        )
    console.print(table)
    console.print(f"Status: {result.contract.signature_status.value}")


@app.command("audit")
def audit(
    contract_id: str = typer.Argument(..., help="Contract ID"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show the audit trail, certification and dispatches of a contract"""
    from contract_signing.errors import ContractSigningError

    lifecycle = _lifecycle()
    try:
        lifecycle.get(contract_id)
        history = asyncio.run(lifecycle.audit.history(contract_id))
    except ContractSigningError as e:
        _fail(e)

    if json_output:
        console.print_json(history.model_dump_json())
        return

    table = Table(title=f"Audit trail - {contract_id[:8]}")
    table.add_column("When", style="dim")
    table.add_column("Event", style="cyan")
    table.add_column("IP")
    table.add_column("Data", style="dim")
    for event in history.events:
        table.add_row(
            event.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            event.label,
            event.ip_address or "-",
            json.dumps(event.event_data, ensure_ascii=False) if event.event_data else "",
        )
    console.print(table)

    if history.certification:
        record = history.certification
        console.print(Panel(
            f"[bold]Hash:[/bold] {record.content_hash}\n"
            f"[bold]Network:[/bold] {record.network or 'pending'}\n"
            f"[bold]Tx:[/bold] {record.tx_id or 'pending'}",
            title="Certification",
            border_style="yellow" if record.pending else "green",
        ))

    if history.dispatches:
        dispatches = Table(title="Notifications")
        dispatches.add_column("ID", style="dim")
        dispatches.add_column("Event")
        dispatches.add_column("Channel", style="cyan")
        dispatches.add_column("Status")
        dispatches.add_column("Attempts", justify="right")
        for d in history.dispatches:
            dispatches.add_row(
                d.id[:8], d.event_type, d.channel.value,
                "[green]sent[/green]" if d.ok else "[red]failed[/red]", str(d.attempts),
            )
        console.print(dispatches)


@app.command("verify")
def verify(
    target: str = typer.Argument(..., help="Contract ID, or a SHA-256 hash with --hash"),
    by_hash: bool = typer.Option(False, "--hash", help="Look up by content hash"),
):
    """Verify a signed document against its certification record"""
    from contract_signing.errors import ContractSigningError

    lifecycle = _lifecycle()
    try:
        if by_hash:
            target = lifecycle.recorder.find_by_digest(target).contract_id
        result = lifecycle.recorder.verify(target)
    except ContractSigningError as e:
        _fail(e)

    colors = {"verified": "green", "anchor_pending": "yellow", "tampered": "red", "not_certified": "dim"}
    color = colors.get(result.status.value, "white")
    console.print(f"[{color}]{result.status.value}[/{color}]")
    if result.expected_hash:
        console.print(f"  Recorded: {result.expected_hash}")
    if result.actual_hash:
        console.print(f"  Computed: {result.actual_hash}")
    if result.tx_id:
        console.print(f"  {result.network}: {result.tx_id}")
    if not result.intact:
        raise typer.Exit(2)


@app.command("retry")
def retry(
    dispatch_id: str = typer.Argument(..., help="Dispatch log ID"),
):
    """Retry a failed notification"""
    from contract_signing.errors import ContractSigningError

    lifecycle = _lifecycle()
    try:
        attempt = asyncio.run(lifecycle.dispatcher.retry(dispatch_id))
    except ContractSigningError as e:
        _fail(e)

    if attempt.ok:
        console.print(f"[green][OK] Sent via {attempt.channel.value} (attempt {attempt.attempts})[/green]")
    else:
        console.print(f"[red][FAIL] {attempt.error_message}[/red]")
        raise typer.Exit(1)


@app.command("export-pdf")
def export_pdf(
    contract_id: str = typer.Argument(..., help="Contract ID"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output file"),
):
    """Export a signed contract with its certification block to PDF"""
    from contract_signing.errors import ContractSigningError
    from contract_signing.services.pdf_generator import export_signed_pdf

    lifecycle = _lifecycle()
    try:
        contract = lifecycle.get(contract_id)
    except ContractSigningError as e:
        _fail(e)
    if not contract.is_signed:
        console.print("[yellow]Contract is not signed; exporting the unsigned body[/yellow]")

    record = lifecycle.recorder.get(contract_id)
    url = lifecycle.verification_url(record.content_hash) if record else None
    output = output or f"./data/output/{contract_id}.pdf"
    try:
        path = export_signed_pdf(contract, record, output, url)
    except OSError as e:
        _fail(e)
    console.print(f"[green][OK] Exported: {path}[/green]")


@app.command("remind")
def remind():
    """Run one expiration reminder pass now"""
    from contract_signing.services.worker import get_worker

    run = asyncio.run(get_worker().send_reminders())
    console.print(
        f"[green][OK][/green] {run.contracts_found} expiring, "
        f"{run.reminders_sent} reminded, {run.reminders_failed} failed"
    )


@app.command("worker")
def worker():
    """Run the reminder scheduler until interrupted"""
    from contract_signing.services.worker import get_worker

    w = get_worker()

    async def run_forever():
        await w.start()
        for job in w.get_status().jobs:
            console.print(f"  [cyan]{job.name}[/cyan] next run: {job.next_run}")
        try:
            await asyncio.Event().wait()
        finally:
            w.stop()

    console.print("[blue]Reminder worker running (Ctrl+C to stop)[/blue]")
    try:
        asyncio.run(run_forever())
    except KeyboardInterrupt:
        console.print("\n[blue]Worker stopped[/blue]")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Start the HTTP API"""
    import uvicorn

    uvicorn.run(
        "contract_signing.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
