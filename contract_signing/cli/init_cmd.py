"""Init command implementation"""

from rich.console import Console
from rich.panel import Panel

from contract_signing.db.supabase import get_database
from contract_signing.services.templates import load_template_catalogue

console = Console()


def init_command(with_templates: bool = True) -> bool:
    """Create the schema and load the bundled template catalogue"""
    console.print(Panel.fit(
        "[bold blue]Initializing WebMarcas Contract Signing[/bold blue]",
        border_style="blue"
    ))

    console.print("\n[yellow]1. Initializing database...[/yellow]")
    try:
        db = get_database()
        db.init_db()
        console.print("[green]   [OK] Database initialized[/green]")
    except Exception as e:
        console.print(f"[red]   [FAIL] Failed to initialize database: {e}[/red]")
        return False

    if with_templates:
        console.print("\n[yellow]2. Loading document templates...[/yellow]")
        try:
            count = load_template_catalogue(db)
            console.print(f"[green]   [OK] {count} templates loaded[/green]")
        except Exception as e:
            console.print(f"[red]   [FAIL] Failed to load templates: {e}[/red]")
            return False

    console.print(Panel.fit(
        "[bold green][OK] Initialization complete![/bold green]\n\n"
        "Next steps:\n"
        "1. List templates: [cyan]python -m contract_signing templates[/cyan]\n"
        "2. Start the API: [cyan]python -m contract_signing serve[/cyan]",
        border_style="green"
    ))
    return True
