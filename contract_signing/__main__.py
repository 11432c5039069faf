"""Entry point for ``python -m contract_signing``"""

from contract_signing.cli.main import app

app()
