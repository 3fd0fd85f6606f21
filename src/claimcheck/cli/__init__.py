"""CLI commands for the claim-check client.

Provides command-line interface using Typer:
- claimcheck cleanup: Delete expired offloaded payloads
- claimcheck config: Show the effective configuration

Usage:
    claimcheck --help
    claimcheck cleanup
    claimcheck cleanup --watch --interval 60
    claimcheck config --format json
"""

import typer

from claimcheck.cli.cleanup_cmd import app as cleanup_app
from claimcheck.cli.config_cmd import app as config_app

# Main CLI application
app = typer.Typer(
    name="claimcheck",
    help="Claim-check client for Azure Service Bus large messages",
    no_args_is_help=True,
)

app.add_typer(cleanup_app, name="cleanup")
app.add_typer(config_app, name="config")


@app.callback()
def callback() -> None:
    """Claim-check client for Azure Service Bus large messages."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
